"""Ordinal ordering of cards within a status column.

Cards with an explicit ordinal always sort before cards without one. Drops
are resolved by fractional indexing: the dropped card gets a value between
its new neighbours, and unordered cards that must stay above it get
explicit ordinals so they do not fall behind it on the next load.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import total_ordering

logger = logging.getLogger(__name__)

DEFAULT_STEP = 1000.0

# Gaps below this leave no room for another midpoint insertion.
MIN_GAP = 1e-6


@total_ordering
class Order(ABC):
    """Position of a card in its column: ``Explicit(value)`` or ``Unordered``."""

    @abstractmethod
    def _rank(self) -> tuple[int, float]: ...

    @property
    @abstractmethod
    def ordinal(self) -> float | None: ...

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Order):
            return NotImplemented
        return self._rank() < other._rank()


@dataclass(frozen=True)
class Explicit(Order):
    value: float

    def _rank(self) -> tuple[int, float]:
        return (0, self.value)

    @property
    def ordinal(self) -> float | None:
        return self.value


@dataclass(frozen=True)
class Unordered(Order):
    def _rank(self) -> tuple[int, float]:
        return (1, 0.0)

    @property
    def ordinal(self) -> float | None:
        return None


UNORDERED = Unordered()


def order_of(ordinal: float | None) -> Order:
    """Wrap an optional number as an Order."""
    if ordinal is None:
        return UNORDERED
    return Explicit(float(ordinal))


@dataclass(frozen=True)
class Card:
    """Minimal card data needed for ordering."""

    task_id: str
    order: Order = UNORDERED

    @classmethod
    def of(cls, task_id: str, ordinal: float | None = None) -> "Card":
        return cls(task_id, order_of(ordinal))

    @property
    def ordinal(self) -> float | None:
        return self.order.ordinal


@dataclass(frozen=True)
class OrdinalUpdate:
    """Instruction to set a task's ordinal.

    ``file_path`` pins the exact variant; None means the task's
    authoritative variant.
    """

    task_id: str
    ordinal: float
    file_path: str | None = None


def natural_id_key(task_id: str) -> tuple[object, ...]:
    """Sort key treating digit runs as numbers (TASK-2 < TASK-10 < TASK-10.1)."""
    parts = re.split(r"(\d+)", task_id.lower())
    return tuple(int(part) if index % 2 else part for index, part in enumerate(parts))


def card_sort_key(order: Order, task_id: str) -> tuple[Order, tuple[object, ...]]:
    """Column sort key: explicit ordinals ascending, then ids naturally."""
    return (order, natural_id_key(task_id))


def sort_cards(cards: Iterable[Card]) -> list[Card]:
    """Return cards in column display order."""
    return sorted(cards, key=lambda card: card_sort_key(card.order, card.task_id))


def calculate_ordinals_for_drop(
    existing_cards: Sequence[Card],
    dropped_card: Card,
    drop_index: int,
    step: float = DEFAULT_STEP,
) -> list[OrdinalUpdate]:
    """Compute the ordinal updates for dropping a card at ``drop_index``.

    Args:
        existing_cards: Cards of the target column in visual order. If the
            dropped card is among them (same-column move), it is removed and
            ``drop_index`` is read in the pre-move coordinates.
        dropped_card: The card being dropped.
        drop_index: 0-based position of the dropped card in the result.
        step: Spacing used for newly assigned ordinals.

    Returns:
        Updates for every unordered card above the drop point, then the
        dropped card, in ascending ordinal order. Cards that keep their
        position without changes are omitted.
    """
    cards = list(existing_cards)
    original_index = next(
        (index for index, card in enumerate(cards) if card.task_id == dropped_card.task_id),
        None,
    )
    if original_index is not None:
        cards.pop(original_index)
        if original_index < drop_index:
            drop_index -= 1
    drop_index = max(0, min(drop_index, len(cards)))

    above = cards[:drop_index]
    below = cards[drop_index:]

    updates: list[OrdinalUpdate] = []
    explicit = [card.ordinal for card in cards if card.ordinal is not None]
    next_free = max(explicit) + step if explicit else step

    floor: float | None = None
    for card in above:
        if card.ordinal is None:
            updates.append(OrdinalUpdate(card.task_id, next_free))
            floor = next_free
            next_free += step
        else:
            floor = card.ordinal if floor is None else max(floor, card.ordinal)

    ceiling = next((card.ordinal for card in below if card.ordinal is not None), None)
    if floor is not None and ceiling is not None and ceiling <= floor:
        logger.warning(
            f"[Ordering] Ceiling {ceiling} not above floor {floor} for {dropped_card.task_id}; "
            "column order is inconsistent, ignoring ceiling"
        )
        ceiling = None

    new_ordinal = _between(floor, ceiling, step)
    if floor is not None and ceiling is not None and min(
        new_ordinal - floor, ceiling - new_ordinal
    ) < MIN_GAP:
        logger.warning(
            f"[Ordering] Gap between {floor} and {ceiling} exhausted; column needs a rebalance"
        )

    updates.append(OrdinalUpdate(dropped_card.task_id, new_ordinal))
    return updates


def _between(floor: float | None, ceiling: float | None, step: float) -> float:
    if ceiling is None:
        return step if floor is None else floor + step
    if floor is None:
        candidate = ceiling - step
        if candidate > 0 or ceiling <= 0:
            return candidate
        return ceiling / 2
    return floor + (ceiling - floor) / 2


def needs_rebalance(cards: Sequence[Card]) -> bool:
    """True when adjacent explicit ordinals are too close for another insertion."""
    ordinals = sorted(card.ordinal for card in cards if card.ordinal is not None)
    return any(upper - lower < MIN_GAP for lower, upper in zip(ordinals, ordinals[1:]))


def rebalance_column(cards: Sequence[Card], step: float = DEFAULT_STEP) -> list[OrdinalUpdate]:
    """Respace the explicit-ordinal cards of a column to step, 2*step, ...

    Unordered cards keep no ordinal. Only cards whose value changes are
    returned.
    """
    updates: list[OrdinalUpdate] = []
    ordered = [card for card in sort_cards(cards) if card.ordinal is not None]
    for index, card in enumerate(ordered, start=1):
        target = step * index
        if card.ordinal != target:
            updates.append(OrdinalUpdate(card.task_id, target))
    return updates
