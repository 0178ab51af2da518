"""
Structured logging helpers for consistent sync log formatting.
"""
import logging
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from tv_schedule.services.schedule_item_manager import ChannelDaySummary


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """
    Log the start of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being started
    """
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """
    Log the end of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being ended
    """
    logger.info(f"Completed: {section_name}")


def log_channel_summary(logger: logging.Logger, summary: "ChannelDaySummary") -> None:
    """
    Log the outcome of syncing one channel's listings for one day.

    Args:
        logger: Logger instance
        summary: Per channel/day counts
    """
    if summary.skipped:
        logger.warning(f"Channel {summary.channel_cid} on {summary.date} skipped: {summary.skipped}")
        return

    logger.info(
        f"Channel {summary.channel_cid} on {summary.date} - "
        f"Listings: {summary.listings}, Stored: {summary.stored}, "
        f"Failed: {summary.failed}, Removed: {summary.deleted}"
    )


def log_prune_summary(logger: logging.Logger, batches: int, items: int) -> None:
    """
    Log pruner queue processing totals.

    Args:
        logger: Logger instance
        batches: Number of queue items processed
        items: Number of schedule items deleted
    """
    logger.info(f"Prune summary - Batches: {batches}, Schedule items deleted: {items}")
