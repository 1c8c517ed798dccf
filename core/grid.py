"""
Grid coordinate mapping for the 3x3 Mandala layout.

Visual positions:

    0 1 2
    3 4 5
    6 7 8

Position 4 is always the center (main goal in overview, focused sub-goal when
zoomed in). The outer ring is walked clockwise from the top-left corner and
maps to outer indices 0..7 of ``subGoals`` / ``tasks``.
"""
from typing import Optional, Tuple

from core.exceptions import GridContractError

CENTER_POSITION = 4
GRID_POSITIONS: Tuple[int, ...] = tuple(range(9))
OUTER_SLOTS = 8

# index -> position
OUTER_POSITIONS: Tuple[int, ...] = (0, 1, 2, 5, 8, 7, 6, 3)

_POSITION_TO_INDEX = {pos: idx for idx, pos in enumerate(OUTER_POSITIONS)}


def is_valid_position(pos) -> bool:
    return isinstance(pos, int) and not isinstance(pos, bool) and pos in GRID_POSITIONS


def is_center(pos: int) -> bool:
    return pos == CENTER_POSITION


def is_valid_index(idx) -> bool:
    return isinstance(idx, int) and not isinstance(idx, bool) and 0 <= idx < OUTER_SLOTS


def position_to_index(pos: int) -> Optional[int]:
    """
    Map a grid position to its outer index.

    Returns None for the center position; the caller decides what the center
    means in the current view.

    Raises:
        GridContractError: pos is not in 0..8.
    """
    if not is_valid_position(pos):
        raise GridContractError(f"Grid position out of range: {pos!r}", value=pos)
    if pos == CENTER_POSITION:
        return None
    return _POSITION_TO_INDEX[pos]


def index_to_position(idx: int) -> int:
    """Inverse of position_to_index for outer indices 0..7."""
    if not is_valid_index(idx):
        raise GridContractError(f"Outer index out of range: {idx!r}", value=idx)
    return OUTER_POSITIONS[idx]
