"""
Data model for delete-sync.
Library items are snapshots of Sonarr/Radarr records with GUIDs already
normalized at the boundary.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MOVIE = "movie"
SHOW = "show"


@dataclass
class LibraryItem:
    """A movie or series as reported by Radarr/Sonarr.

    Attributes:
        content_type: "movie" or "show".
        title: Display title.
        guids: Normalized GUIDs, e.g. ["tmdb:603", "imdb:tt0133093"].
        instance_id: Id of the owning Sonarr/Radarr instance.
        arr_id: The item's id inside that instance.
        tags: Tag ids attached to the item.
        status: "available"/"unavailable" for movies, "continuing"/"ended" for shows.
        malformed: True if the stored GUIDs could not be decoded.
    """
    content_type: str
    title: str
    guids: List[str] = field(default_factory=list)
    instance_id: Optional[int] = None
    arr_id: Optional[int] = None
    tags: List[int] = field(default_factory=list)
    status: str = ""
    malformed: bool = False

    @property
    def is_movie(self) -> bool:
        return self.content_type == MOVIE

    @property
    def is_continuing(self) -> bool:
        """Shows are continuing unless Sonarr says they have ended."""
        return self.content_type == SHOW and self.status != "ended"


@dataclass
class WatchlistItem:
    """A single title on one user's watchlist."""
    user_id: int
    title: str
    content_type: str
    guids: List[str] = field(default_factory=list)
    key: str = ""
    malformed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "title": self.title,
            "type": self.content_type,
            "guids": list(self.guids),
            "key": self.key,
        }


@dataclass
class User:
    """A Plex user whose watchlist feeds delete-sync."""
    id: int
    name: str
    can_sync: bool = True
    is_primary: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "can_sync": self.can_sync,
            "is_primary": self.is_primary,
        }
