"""Builds the ``{{savedMessages}}`` excerpt of prior conversation turns."""

import logging
from typing import Optional, Sequence

from response_refiner.models.conversation import Message

logger = logging.getLogger(__name__)

ENTIRE_HISTORY = -1


def window_bounds(
    total: int,
    target_index: int,
    count: int,
) -> Optional[tuple[int, int]]:
    """
    Compute the inclusive ``(start, end)`` window of turns before a target.

    Only turns strictly before ``target_index`` are eligible. A ``count`` of
    ``-1`` (or anything lower) selects the entire prior history.

    Returns:
        The window bounds, or None when the window is empty
    """
    if count == 0 or total <= 0:
        return None

    end = min(target_index - 1, total - 1)
    if end < 0:
        return None

    if count < ENTIRE_HISTORY:
        count = ENTIRE_HISTORY

    start = 0 if count == ENTIRE_HISTORY else max(0, end - count + 1)
    return start, end


def build_saved_messages(
    history: Sequence[Message],
    target_index: int,
    count: int,
    enabled: bool = True,
) -> str:
    """
    Format the turns preceding ``target_index`` for inclusion in a prompt.

    Each non-blank turn becomes ``"<Role>: <text>"``; turns are separated by
    a blank line.

    Args:
        history: The full conversation, oldest first
        target_index: Position of the message being refined
        count: Number of prior turns to include, or -1 for all of them
        enabled: When False the excerpt is always empty

    Returns:
        The formatted excerpt, possibly empty
    """
    if not enabled:
        return ""

    bounds = window_bounds(len(history), target_index, count)
    if bounds is None:
        return ""

    start, end = bounds
    lines = [
        f"{message.role_label}: {message.text}"
        for message in history[start : end + 1]
        if message is not None and not message.is_blank()
    ]

    logger.debug(f"Saved messages window [{start}, {end}] produced {len(lines)} turns")
    return "\n\n".join(lines)
