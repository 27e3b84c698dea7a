from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .equipment_selection import Category, Option, SelectionMode

logger = logging.getLogger(__name__)


class SelectionState:
    """Per-form record of the options chosen in each category.

    A state belongs to exactly one fighter type. Switching type means
    building a new state; nothing is carried over.
    """

    def __init__(self, categories: Iterable[Category]) -> None:
        self._categories: dict[str, Category] = {}
        self._selected: dict[str, list[str]] = {}
        self._remaining: dict[str, dict[str, int]] = {}
        self._displaced: dict[str, dict[str, tuple[str | None, int]]] = {}
        for category in categories:
            self._categories[category.id] = category
            self._selected[category.id] = []
            self._remaining[category.id] = self._original_defaults(category)
            self._displaced[category.id] = {}

    @classmethod
    def from_snapshot(
        cls,
        categories: Iterable[Category],
        snapshot: Mapping[str, Any] | None,
    ) -> "SelectionState":
        state = cls(categories)
        if not isinstance(snapshot, Mapping):
            return state
        for category_id, raw_ids in snapshot.items():
            if isinstance(raw_ids, (str, int)):
                raw_ids = [raw_ids]
            if not isinstance(raw_ids, (list, tuple)):
                continue
            for option_id in raw_ids:
                if option_id is None:
                    continue
                state.toggle(category_id, option_id, True)
        return state

    @staticmethod
    def _original_defaults(category: Category) -> dict[str, int]:
        return {item.equipment_id: item.quantity for item in category.defaults}

    @property
    def categories(self) -> list[Category]:
        return list(self._categories.values())

    def category(self, category_id: Any) -> Category | None:
        return self._categories.get(str(category_id))

    def selected_ids(self, category_id: Any) -> tuple[str, ...]:
        return tuple(self._selected.get(str(category_id), ()))

    def is_selected(self, category_id: Any, option_id: Any) -> bool:
        return str(option_id) in self._selected.get(str(category_id), ())

    def selected_options(self, category_id: Any) -> list[Option]:
        category = self.category(category_id)
        if category is None:
            return []
        options: list[Option] = []
        for option_id in self._selected[category.id]:
            option = category.option(option_id)
            if option is not None:
                options.append(option)
        return options

    def selected_quantity(self, category_id: Any, option_id: Any) -> int:
        category = self.category(category_id)
        if category is None or not self.is_selected(category.id, option_id):
            return 0
        option = category.option(option_id)
        if option is None:
            return 0
        return category.unit_quantity(option)

    def remaining_defaults(self, category_id: Any) -> dict[str, int]:
        remaining = self._remaining.get(str(category_id), {})
        return {key: value for key, value in remaining.items() if value > 0}

    def remaining_default_total(self, category_id: Any) -> int:
        return sum(self.remaining_defaults(category_id).values())

    def displaced_quantity(self, category_id: Any, option_id: Any) -> int:
        entry = self._displaced.get(str(category_id), {}).get(str(option_id))
        return entry[1] if entry else 0

    def snapshot(self) -> dict[str, list[str]]:
        return {
            category_id: list(option_ids)
            for category_id, option_ids in self._selected.items()
            if option_ids
        }

    def missing_required(self) -> list[Category]:
        missing: list[Category] = []
        for category in self._categories.values():
            if not category.required:
                continue
            if self._selected[category.id]:
                continue
            if self.remaining_default_total(category.id) > 0:
                continue
            missing.append(category)
        return missing

    def toggle(self, category_id: Any, option_id: Any, selected: bool | None = None) -> bool:
        """Select or deselect ``option_id``; ``selected=None`` flips it.

        Returns ``True`` when the state changed. Unknown categories and
        options are ignored.
        """

        category = self.category(category_id)
        if category is None:
            logger.debug("Ignoring toggle for unknown category %r", category_id)
            return False
        option = category.option(option_id)
        if option is None:
            logger.debug(
                "Ignoring toggle for unknown option %r in category %s",
                option_id,
                category.id,
            )
            return False

        currently = option.equipment_id in self._selected[category.id]
        target = (not currently) if selected is None else bool(selected)
        if target == currently:
            return False

        if category.mode is SelectionMode.SINGLE:
            self._toggle_single(category, option, target)
        elif category.mode is SelectionMode.MULTIPLE:
            self._toggle_multiple(category, option, target)
        elif category.mode is SelectionMode.OPTIONAL:
            self._toggle_optional(category, option, target)
        elif category.mode is SelectionMode.OPTIONAL_SINGLE:
            self._toggle_optional_single(category, option, target)
        else:  # pragma: no cover - closed enumeration
            raise ValueError(f"Unsupported selection mode: {category.mode!r}")
        return True

    def keep_default(self, category_id: Any) -> bool:
        """Drop every replacement in the category and restore its defaults."""

        category = self.category(category_id)
        if category is None or not category.mode.has_defaults:
            return False
        if not self._selected[category.id]:
            return False
        self._selected[category.id] = []
        self._remaining[category.id] = self._original_defaults(category)
        self._displaced[category.id] = {}
        return True

    def _toggle_single(self, category: Category, option: Option, target: bool) -> None:
        self._selected[category.id] = [option.equipment_id] if target else []

    def _toggle_multiple(self, category: Category, option: Option, target: bool) -> None:
        selected = self._selected[category.id]
        if target:
            selected.append(option.equipment_id)
        else:
            selected.remove(option.equipment_id)

    def _displacement_target(self, category: Category, option: Option) -> str | None:
        remaining = self._remaining[category.id]
        if option.replaces is not None and option.replaces in remaining:
            return option.replaces
        for item in category.defaults:
            if remaining.get(item.equipment_id, 0) > 0:
                return item.equipment_id
        if category.defaults:
            return category.defaults[0].equipment_id
        return None

    def _toggle_optional(self, category: Category, option: Option, target: bool) -> None:
        remaining = self._remaining[category.id]
        displaced = self._displaced[category.id]
        if target:
            default_id = self._displacement_target(category, option)
            available = remaining.get(default_id, 0) if default_id is not None else 0
            left = max(available - option.max_quantity, 0)
            if default_id is not None:
                remaining[default_id] = left
            displaced[option.equipment_id] = (default_id, available - left)
            self._selected[category.id].append(option.equipment_id)
            return

        default_id, quantity = displaced.pop(option.equipment_id, (None, 0))
        if default_id is not None:
            remaining[default_id] = remaining.get(default_id, 0) + quantity
        self._selected[category.id].remove(option.equipment_id)

    def _toggle_optional_single(
        self, category: Category, option: Option, target: bool
    ) -> None:
        if not target:
            self.keep_default(category.id)
            return
        self._selected[category.id] = [option.equipment_id]
        self._remaining[category.id] = {key: 0 for key in self._remaining[category.id]}
        self._displaced[category.id] = {option.equipment_id: (None, category.default_total)}
