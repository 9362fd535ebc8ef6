"""Authoring order helpers.

Pure list operations used by the builder for inserting, reordering and moving
sections and questions. Final order values are always contiguous and 0-based,
derived from position; these helpers are the single source of truth for them.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def clamp_position(position: int | None, length: int) -> int:
    """Clamp an insertion index into ``[0..length]``; None appends."""
    if position is None or position > length:
        return length
    if position < 0:
        return 0
    return int(position)


def array_move(items: Sequence[T], from_index: int, to_index: int) -> List[T]:
    """Return a copy of ``items`` with the element at ``from_index`` moved to ``to_index``.

    ``to_index`` is clamped into the valid range; an out-of-range
    ``from_index`` raises IndexError.
    """
    working = list(items)
    if from_index < 0 or from_index >= len(working):
        raise IndexError(f"from_index {from_index} out of range for {len(working)} items")
    moving = working.pop(from_index)
    working.insert(clamp_position(to_index, len(working)), moving)
    return working


def insert_at(items: Sequence[T], item: T, position: int | None) -> List[T]:
    working = list(items)
    working.insert(clamp_position(position, len(working)), item)
    return working


def remove_at(items: Sequence[T], index: int) -> Tuple[List[T], T]:
    working = list(items)
    if index < 0 or index >= len(working):
        raise IndexError(f"index {index} out of range for {len(working)} items")
    removed = working.pop(index)
    return working, removed


__all__ = [
    "clamp_position",
    "array_move",
    "insert_at",
    "remove_at",
]
