"""Progress reporting utilities for tiledispatch.

Provides a tqdm progress bar over completed tiles.
"""

from typing import Optional, Any
import logging

from tqdm import tqdm

logger = logging.getLogger(__name__)


def get_progress_reporter(total: int = None, desc: str = "Processing tiles", enabled: bool = True) -> Optional[Any]:
    """
    Get a progress reporter instance (tqdm bar or None).

    Args:
        total: Total number of tiles (for bar length).
        desc: Description for the progress bar.
        enabled: When False no bar is created.

    Returns:
        tqdm instance or None if disabled.
    """
    if not enabled:
        return None

    bar = tqdm(total=total, desc=desc, unit="tile", leave=False)
    logger.debug(f"Progress bar created for '{desc}' with total {total}")
    return bar


def update_progress(reporter: Optional[Any], increment: int = 1, desc: str = None) -> None:
    """
    Update the progress reporter.

    Args:
        reporter: Progress reporter from get_progress_reporter.
        increment: Number of steps to advance.
        desc: New description (optional).
    """
    if reporter is None:
        return

    if desc:
        reporter.set_description(desc)
    reporter.update(increment)


def close_progress(reporter: Optional[Any]) -> None:
    """Close the progress reporter."""
    if reporter is None:
        return

    reporter.close()
    logger.debug("Progress bar closed")


__all__ = ["get_progress_reporter", "update_progress", "close_progress"]
