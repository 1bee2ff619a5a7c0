"""Delete-sync run results and the builders for the common outcomes."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from deletesync.counters import DeletionCounters, DeletionRecord


@dataclass
class CategoryResult:
    """Per content type totals"""
    deleted: int = 0
    skipped: int = 0
    protected: int = 0
    items: List[DeletionRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deleted": self.deleted,
            "skipped": self.skipped,
            "protected": self.protected,
            "items": [record.to_dict() for record in self.items],
        }


@dataclass
class DeleteSyncResult:
    """Outcome of one delete-sync run.

    safety_triggered distinguishes "refused to act" from a crashed run,
    which raises instead of returning.
    """
    deleted: int = 0
    skipped: int = 0
    protected: int = 0
    processed: int = 0
    movies: CategoryResult = field(default_factory=CategoryResult)
    shows: CategoryResult = field(default_factory=CategoryResult)
    safety_triggered: bool = False
    safety_message: Optional[str] = None
    message: Optional[str] = None
    malformed_items: int = 0
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "total": {
                "deleted": self.deleted,
                "skipped": self.skipped,
                "protected": self.protected,
                "processed": self.processed,
            },
            "movies": self.movies.to_dict(),
            "shows": self.shows.to_dict(),
            "malformedItems": self.malformed_items,
            "dryRun": self.dry_run,
        }
        if self.safety_triggered:
            data["safetyTriggered"] = True
            data["safetyMessage"] = self.safety_message
        if self.message:
            data["message"] = self.message
        return data


def create_empty_result(message: Optional[str] = None, dry_run: bool = False) -> DeleteSyncResult:
    """A result with every count at zero."""
    return DeleteSyncResult(message=message, dry_run=dry_run)


def create_safety_triggered_result(message: str, series_count: int = 0, movies_count: int = 0,
                                   dry_run: bool = False) -> DeleteSyncResult:
    """A refused run. The given counts are reported as skipped, nothing is deleted."""
    return DeleteSyncResult(
        skipped=series_count + movies_count,
        processed=series_count + movies_count,
        movies=CategoryResult(skipped=movies_count),
        shows=CategoryResult(skipped=series_count),
        safety_triggered=True,
        safety_message=message,
        dry_run=dry_run,
    )


def build_result(counters: DeletionCounters, dry_run: bool = False) -> DeleteSyncResult:
    """Freeze the run's counters into a result."""
    return DeleteSyncResult(
        deleted=counters.total_deleted,
        skipped=counters.total_skipped,
        protected=counters.total_protected,
        processed=counters.total_processed,
        movies=CategoryResult(
            deleted=counters.movies_deleted,
            skipped=counters.movies_skipped,
            protected=counters.movies_protected,
            items=list(counters.movie_records),
        ),
        shows=CategoryResult(
            deleted=counters.total_shows_deleted,
            skipped=counters.total_shows_skipped,
            protected=counters.shows_protected,
            items=list(counters.show_records),
        ),
        malformed_items=counters.malformed_items,
        dry_run=dry_run,
    )
