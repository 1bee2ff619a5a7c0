"""
Mass-deletion safety gate.
Refuses a run whose candidate set is too large a share of the library,
or whose watchlist universe is empty.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Set

EMPTY_UNIVERSE_MESSAGE = (
    "No watchlist items found - this could be an error condition. "
    "Aborting delete sync to prevent mass deletion."
)


@dataclass
class SafetyCheckResult:
    """Outcome of a safety check"""
    safe: bool
    message: str
    percentage: float = 0.0


def parse_ceiling(ceiling: Any) -> Optional[float]:
    """Return the ceiling as a float, or None unless it is a number in [0, 100]."""
    if isinstance(ceiling, bool):
        return None
    try:
        value = float(ceiling)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or value < 0 or value > 100:
        return None
    return value


def _format_ceiling(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def check_safety(candidate_movie_count: int, candidate_show_count: int,
                 total_library_count: int, ceiling_percent: Any) -> SafetyCheckResult:
    """Check the share of the library a run would delete.

    Trips only when the percentage is strictly greater than the ceiling.
    An empty library or an invalid ceiling is unsafe.
    """
    candidates = candidate_movie_count + candidate_show_count

    if total_library_count <= 0:
        logging.warning("[DELETE SYNC] No content found in media servers")
        return SafetyCheckResult(False, "No content found in media servers")

    percentage = candidates / total_library_count * 100

    ceiling = parse_ceiling(ceiling_percent)
    if ceiling is None:
        logging.debug(f"[DELETE SYNC] Rejected max_deletion_prevention value: {ceiling_percent!r}")
        return SafetyCheckResult(
            False,
            f'Invalid maxDeletionPrevention value: "{ceiling_percent}". '
            f'Please set a percentage between 0 and 100 inclusive.',
            percentage,
        )

    logging.info(
        f"[DELETE SYNC] Deletion would affect {candidates} of {total_library_count} items ({percentage:.2f}%)"
    )

    if percentage > ceiling:
        return SafetyCheckResult(
            False,
            f"Safety check failed: Would delete {candidates} out of {total_library_count} items "
            f"({percentage:.2f}%), which exceeds maximum allowed percentage of {_format_ceiling(ceiling)}%.",
            percentage,
        )

    return SafetyCheckResult(True, "Safety check passed", percentage)


def check_watchlist_universe(universe: Set[str]) -> SafetyCheckResult:
    """An empty universe usually means an upstream fetch failed, so refuse to run."""
    if not universe:
        return SafetyCheckResult(False, EMPTY_UNIVERSE_MESSAGE)
    return SafetyCheckResult(True, "Watchlist universe is populated")
