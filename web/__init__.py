"""PlexPrune web service"""
