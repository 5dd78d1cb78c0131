"""
Drop-position math for dragging cards between columns.

The browser reports the pointer position together with the bounding boxes of
the columns and of the cards already in the target column; these helpers turn
that geometry into a target status and an insertion index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class CardBox:
    task_id: int
    top: float
    height: float

    @property
    def center(self) -> float:
        return self.top + self.height / 2

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CardBox":
        return cls(int(data["id"]), float(data["top"]), float(data.get("height", 0)))


@dataclass(frozen=True)
class ColumnBox:
    status: str
    left: float
    right: float
    top: float = float("-inf")
    bottom: float = float("inf")

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def horizontal_distance(self, x: float) -> float:
        if x < self.left:
            return self.left - x
        if x > self.right:
            return x - self.right
        return 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnBox":
        return cls(
            str(data["status"]),
            float(data["left"]),
            float(data["right"]),
            float(data.get("top", float("-inf"))),
            float(data.get("bottom", float("inf"))),
        )


def insertion_index(pointer_y: float, cards: Iterable[CardBox]) -> int:
    """
    Index at which a dropped card lands among ``cards``.

    ``cards`` must not include the card being dragged. The nearest card by
    vertical centre decides: above its centre inserts before it, otherwise
    after it. Ties go to the card higher in the column.
    """
    ordered: List[CardBox] = sorted(cards, key=lambda box: box.top)
    if not ordered:
        return 0

    nearest = 0
    best = abs(pointer_y - ordered[0].center)
    for index, box in enumerate(ordered[1:], start=1):
        distance = abs(pointer_y - box.center)
        if distance < best:
            nearest, best = index, distance

    if pointer_y < ordered[nearest].center:
        return nearest
    return nearest + 1


def resolve_drop_column(pointer_x: float, pointer_y: float, columns: Sequence[ColumnBox]) -> Optional[str]:
    """Status of the column under the pointer, else the horizontally nearest one."""
    if not columns:
        return None
    for column in columns:
        if column.contains(pointer_x, pointer_y):
            return column.status
    return min(columns, key=lambda column: column.horizontal_distance(pointer_x)).status


def cards_excluding(cards: Iterable[CardBox], task_id: int) -> List[CardBox]:
    return [box for box in cards if box.task_id != task_id]
