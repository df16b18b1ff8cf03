"""Ordered exit queue with dense 1-based positions."""
from __future__ import annotations

from bisect import bisect_left, insort
from collections.abc import Iterable, Iterator

from sharepool.core.errors import ValidationError


class FifoQueue:
    """Queue of order ids ordered by admission sequence.

    Entries are kept sorted by ``(sequence, order_id)``; an order's position
    is its index plus one, so removals compact the queue automatically.
    Requeueing gives the order a fresh sequence past the current tail.
    """

    def __init__(self, order_ids: Iterable[int] = ()) -> None:
        self._entries: list[tuple[int, int]] = []
        self._sequence: dict[int, int] = {}
        self._next_sequence = 1
        for order_id in order_ids:
            self.append(order_id)

    @classmethod
    def from_positions(cls, rows: Iterable[tuple[int, int]]) -> "FifoQueue":
        """Rebuild from stored ``(position, order_id)`` pairs, gaps tolerated."""

        return cls(order_id for _, order_id in sorted(rows))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[int]:
        return (order_id for _, order_id in self._entries)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._sequence

    def append(self, order_id: int) -> int:
        if order_id in self._sequence:
            raise ValidationError("Order is already queued", order_id=order_id)
        sequence = self._next_sequence
        self._next_sequence += 1
        self._sequence[order_id] = sequence
        insort(self._entries, (sequence, order_id))
        return len(self._entries)

    def remove(self, order_id: int) -> None:
        sequence = self._sequence.pop(order_id, None)
        if sequence is None:
            raise ValidationError("Order is not queued", order_id=order_id)
        index = bisect_left(self._entries, (sequence, order_id))
        del self._entries[index]

    def requeue(self, order_id: int) -> int:
        """Move ``order_id`` to the tail and return its new position."""

        self.remove(order_id)
        return self.append(order_id)

    def position_of(self, order_id: int) -> int:
        sequence = self._sequence.get(order_id)
        if sequence is None:
            raise ValidationError("Order is not queued", order_id=order_id)
        return bisect_left(self._entries, (sequence, order_id)) + 1

    def positions(self) -> dict[int, int]:
        return {order_id: index for index, (_, order_id) in enumerate(self._entries, start=1)}


__all__ = ["FifoQueue"]
