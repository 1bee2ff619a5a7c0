"""Deletion counters and audit records for a single delete-sync run."""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass(frozen=True)
class DeletionRecord:
    """Audit entry for one deleted (or would-be deleted) item"""
    title: str
    guid: str
    instance: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "guid": self.guid, "instance": self.instance}


@dataclass
class DeletionCounters:
    """Accumulates per-run counts. Only deletions append a record."""
    movies_deleted: int = 0
    movies_skipped: int = 0
    movies_protected: int = 0
    ended_shows_deleted: int = 0
    ended_shows_skipped: int = 0
    continuing_shows_deleted: int = 0
    continuing_shows_skipped: int = 0
    shows_protected: int = 0
    malformed_items: int = 0
    movie_records: List[DeletionRecord] = field(default_factory=list)
    show_records: List[DeletionRecord] = field(default_factory=list)

    def increment_movie_deleted(self, record: DeletionRecord) -> None:
        self.movies_deleted += 1
        self.movie_records.append(record)

    def increment_movie_skipped(self) -> None:
        self.movies_skipped += 1

    def increment_movie_protected(self) -> None:
        self.movies_protected += 1

    def increment_show_deleted(self, record: DeletionRecord, is_continuing: bool) -> None:
        if is_continuing:
            self.continuing_shows_deleted += 1
        else:
            self.ended_shows_deleted += 1
        self.show_records.append(record)

    def increment_show_skipped(self, is_continuing: bool) -> None:
        if is_continuing:
            self.continuing_shows_skipped += 1
        else:
            self.ended_shows_skipped += 1

    def increment_show_protected(self) -> None:
        self.shows_protected += 1

    def increment_malformed(self) -> None:
        self.malformed_items += 1

    @property
    def total_shows_deleted(self) -> int:
        return self.ended_shows_deleted + self.continuing_shows_deleted

    @property
    def total_shows_skipped(self) -> int:
        return self.ended_shows_skipped + self.continuing_shows_skipped

    @property
    def total_deleted(self) -> int:
        return self.movies_deleted + self.total_shows_deleted

    @property
    def total_skipped(self) -> int:
        return self.movies_skipped + self.total_shows_skipped

    @property
    def total_protected(self) -> int:
        return self.movies_protected + self.shows_protected

    @property
    def total_processed(self) -> int:
        return self.total_deleted + self.total_skipped + self.total_protected
