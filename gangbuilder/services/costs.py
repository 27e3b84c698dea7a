"""Loadout cost resolution.

The derived strategy recomputes the options cost from the selection state on
every change. The incremental tracker mirrors the older client behaviour of
adding and subtracting option costs on a running, user-editable total and is
only used when ``COST_STRATEGY`` is set to ``incremental``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from .. import config
from .equipment_selection import Category, Option
from .selection_state import SelectionState
from .utils import round_points

logger = logging.getLogger(__name__)


def parse_cost(value: Any, default: int = 0) -> int:
    """Round ``value`` to whole credits, or return ``default`` when it is not a number."""

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            value = Decimal(text)
        except InvalidOperation:
            return default
    elif not isinstance(value, (int, float, Decimal)):
        return default
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    if not number.is_finite():
        return default
    return round_points(number)


def option_cost(category: Category, option: Option) -> int:
    return option.cost * category.unit_quantity(option)


def options_cost(categories: Iterable[Category], state: SelectionState) -> int:
    total = 0
    for category in categories:
        for option in state.selected_options(category.id):
            total += option_cost(category, option)
    return total


def resolve_cost(base_cost: Any, categories: Iterable[Category], state: SelectionState) -> int:
    return parse_cost(base_cost) + options_cost(categories, state)


class IncrementalCostTracker:
    """Running total updated by per-toggle deltas."""

    def __init__(
        self,
        base_cost: Any,
        categories: Iterable[Category],
        total: Any = None,
    ) -> None:
        self.base_cost = parse_cost(base_cost)
        self.total = parse_cost(total, self.base_cost)
        self._categories = {category.id: category for category in categories}

    def apply(
        self,
        category_id: Any,
        option_id: Any,
        selected: bool,
        previous_option_id: Any = None,
    ) -> int:
        category = self._categories.get(str(category_id))
        if category is None:
            return 0
        option = category.option(option_id)
        if option is None:
            return 0
        if selected:
            delta = option_cost(category, option)
            if category.mode.is_exclusive and previous_option_id is not None:
                previous = category.option(previous_option_id)
                if previous is not None and previous.equipment_id != option.equipment_id:
                    delta -= option_cost(category, previous)
        else:
            delta = -option_cost(category, option)
        self.total += delta
        return delta

    def toggle(
        self,
        state: SelectionState,
        category_id: Any,
        option_id: Any,
        selected: bool | None = None,
    ) -> bool:
        category = state.category(category_id)
        if category is None:
            return False
        previous = state.selected_ids(category.id)
        if not state.toggle(category.id, option_id, selected):
            return False
        now_selected = state.is_selected(category.id, option_id)
        previous_id = None
        if category.mode.is_exclusive and previous and previous[0] != str(option_id):
            previous_id = previous[0]
        self.apply(category.id, option_id, now_selected, previous_option_id=previous_id)
        return True

    def keep_default(self, state: SelectionState, category_id: Any) -> bool:
        previous = state.selected_ids(category_id)
        if not state.keep_default(category_id):
            return False
        for option_id in previous:
            self.apply(category_id, option_id, False)
        return True


@dataclass(frozen=True, slots=True)
class SelectionChange:
    category_id: str
    option_id: str | None = None
    selected: bool | None = None
    keep_default: bool = False


def resolve_loadout_cost(
    base_cost: Any,
    state: SelectionState,
    change: SelectionChange | None = None,
    *,
    current_cost: Any = None,
    strategy: str | None = None,
) -> int:
    """Apply ``change`` to ``state`` and return the resulting total cost.

    With the incremental strategy the total starts from ``current_cost`` (the
    value shown in the editable cost field) and only the delta of ``change``
    is applied to it. Without a usable ``current_cost`` it starts from the
    derived cost of ``state`` as it was before the change.
    """

    strategy = strategy or config.COST_STRATEGY
    if strategy == "incremental":
        starting_cost = parse_cost(
            current_cost, resolve_cost(base_cost, state.categories, state)
        )
        tracker = IncrementalCostTracker(base_cost, state.categories, total=starting_cost)
        if change is not None:
            if change.keep_default:
                tracker.keep_default(state, change.category_id)
            elif change.option_id is not None:
                tracker.toggle(state, change.category_id, change.option_id, change.selected)
        return tracker.total

    if strategy != "derived":
        logger.warning("Unknown cost strategy %r, falling back to derived", strategy)
    if change is not None:
        if change.keep_default:
            state.keep_default(change.category_id)
        elif change.option_id is not None:
            state.toggle(change.category_id, change.option_id, change.selected)
    return resolve_cost(base_cost, state.categories, state)
