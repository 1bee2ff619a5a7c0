#!/usr/bin/env python3
"""PlexPrune - delete-sync for Plex watchlists and Sonarr/Radarr.

Runs one reconciliation pass: anything in Sonarr/Radarr that no user has on
their Plex watchlist any more is removed, within the configured safety limit.

Usage:
    python plexprune.py                  # Run delete sync
    python plexprune.py --dry-run        # Report what would be deleted
    python plexprune.py --verbose        # Enable debug logging
    python plexprune.py --config PATH    # Use a different settings file
"""
import sys

from deletesync.app import main

if __name__ == "__main__":
    sys.exit(main())
