"""Normalization of fighter type ``equipment_selection`` payloads.

The backend has produced two shapes over time. The legacy shape is keyed by
an arbitrary category id and every value already describes one category
(``name``, ``select_type``, ``default``, ``options``). The current shape is
keyed by selection mode, then by equipment bucket (``weapons``/``wargear``),
and a bucket holds either a flat list of items or a list of item groups.

Both are reduced here to a flat list of :class:`Category` records so the rest
of the engine never looks at the raw payload again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from ..config import EQUIPMENT_BUCKETS
from .utils import coerce_int, ensure_json_dict, round_points

logger = logging.getLogger(__name__)


class SelectionMode(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"
    OPTIONAL = "optional"
    OPTIONAL_SINGLE = "optional_single"

    @property
    def has_defaults(self) -> bool:
        return self in (SelectionMode.OPTIONAL, SelectionMode.OPTIONAL_SINGLE)

    @property
    def is_exclusive(self) -> bool:
        return self in (SelectionMode.SINGLE, SelectionMode.OPTIONAL_SINGLE)

    @classmethod
    def parse(cls, value: Any) -> "SelectionMode | None":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for mode in cls:
            if mode.value == text:
                return mode
        return None


MODE_ORDER: tuple[SelectionMode, ...] = (
    SelectionMode.SINGLE,
    SelectionMode.MULTIPLE,
    SelectionMode.OPTIONAL,
    SelectionMode.OPTIONAL_SINGLE,
)
_MODE_NAMES = frozenset(mode.value for mode in SelectionMode)

SHAPE_LEGACY = "legacy"
SHAPE_CURRENT = "current"


@dataclass(frozen=True, slots=True)
class DefaultItem:
    equipment_id: str
    quantity: int = 1
    name: str = ""
    cost: int = 0


@dataclass(frozen=True, slots=True)
class Option:
    equipment_id: str
    cost: int = 0
    max_quantity: int = 1
    name: str = ""
    replaces: str | None = None


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str
    mode: SelectionMode
    defaults: tuple[DefaultItem, ...] = field(default_factory=tuple)
    options: tuple[Option, ...] = field(default_factory=tuple)
    required: bool = False

    def option(self, option_id: Any) -> Option | None:
        key = str(option_id)
        for option in self.options:
            if option.equipment_id == key:
                return option
        return None

    def default(self, equipment_id: Any) -> DefaultItem | None:
        key = str(equipment_id)
        for item in self.defaults:
            if item.equipment_id == key:
                return item
        return None

    def unit_quantity(self, option: Option) -> int:
        """Number of units one selection of ``option`` adds to the loadout."""

        if self.mode is SelectionMode.OPTIONAL:
            return option.max_quantity
        return 1

    @property
    def default_total(self) -> int:
        return sum(item.quantity for item in self.defaults)

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mode": self.mode.value,
            "required": self.required,
            "defaults": [
                {
                    "equipment_id": item.equipment_id,
                    "name": item.name,
                    "quantity": item.quantity,
                    "cost": item.cost,
                }
                for item in self.defaults
            ],
            "options": [
                {
                    "equipment_id": option.equipment_id,
                    "name": option.name,
                    "cost": option.cost,
                    "max_quantity": option.max_quantity,
                    "replaces": option.replaces,
                }
                for option in self.options
            ],
        }


def _item_id(item: Mapping[str, Any]) -> str | None:
    raw_id = item.get("id")
    if raw_id is None:
        raw_id = item.get("equipment_id")
    if raw_id is None:
        return None
    text = str(raw_id).strip()
    return text or None


def _item_name(item: Mapping[str, Any]) -> str:
    value = item.get("equipment_name") or item.get("name") or ""
    return str(value).strip()


def _item_cost(item: Mapping[str, Any]) -> int:
    return max(round_points(item.get("cost")), 0)


def _item_max_quantity(item: Mapping[str, Any]) -> int:
    return max(coerce_int(item.get("max_quantity"), 1), 1)


def _item_quantity(item: Mapping[str, Any]) -> int:
    return max(coerce_int(item.get("quantity"), 1), 0)


def _first_replaced_id(raw: Any) -> str | None:
    if isinstance(raw, (list, tuple)):
        for entry in raw:
            if isinstance(entry, Mapping):
                entry = _item_id(entry)
            if entry is None:
                continue
            text = str(entry).strip()
            if text:
                return text
        return None
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _merge_defaults(entries: Iterable[DefaultItem]) -> tuple[DefaultItem, ...]:
    merged: dict[str, DefaultItem] = {}
    for entry in entries:
        if entry.quantity <= 0:
            continue
        existing = merged.get(entry.equipment_id)
        if existing is None:
            merged[entry.equipment_id] = entry
            continue
        merged[entry.equipment_id] = DefaultItem(
            equipment_id=existing.equipment_id,
            quantity=existing.quantity + entry.quantity,
            name=existing.name or entry.name,
            cost=existing.cost,
        )
    return tuple(merged.values())


def _option_from_item(item: Mapping[str, Any], replaces: str | None = None) -> Option | None:
    equipment_id = _item_id(item)
    if equipment_id is None:
        return None
    return Option(
        equipment_id=equipment_id,
        cost=_item_cost(item),
        max_quantity=_item_max_quantity(item),
        name=_item_name(item),
        replaces=replaces,
    )


def _default_from_item(item: Mapping[str, Any]) -> DefaultItem | None:
    equipment_id = _item_id(item)
    if equipment_id is None:
        return None
    return DefaultItem(
        equipment_id=equipment_id,
        quantity=_item_quantity(item),
        name=_item_name(item),
        cost=_item_cost(item),
    )


def _dict_items(raw: Any) -> list[Mapping[str, Any]]:
    if not isinstance(raw, (list, tuple)):
        return []
    return [entry for entry in raw if isinstance(entry, Mapping)]


def _build_category(
    category_id: str,
    name: str,
    mode: SelectionMode,
    defaults: Iterable[DefaultItem],
    options: Iterable[Option],
    required: bool,
) -> Category | None:
    merged_defaults = _merge_defaults(defaults) if mode.has_defaults else ()
    # Later duplicates overwrite earlier ones but keep the first position.
    option_map: dict[str, Option] = {}
    for option in options:
        option_map[option.equipment_id] = option
    if not merged_defaults and not option_map:
        return None
    return Category(
        id=category_id,
        name=name,
        mode=mode,
        defaults=merged_defaults,
        options=tuple(option_map.values()),
        required=required,
    )


def detect_selection_shape(raw: Any) -> str | None:
    data = ensure_json_dict(raw)
    if not data:
        return None
    if any(isinstance(value, Mapping) and "select_type" in value for value in data.values()):
        return SHAPE_LEGACY
    keys = {str(key) for key in data}
    if keys and keys <= _MODE_NAMES:
        return SHAPE_CURRENT
    return None


def _normalize_legacy(data: Mapping[str, Any]) -> list[Category]:
    categories: list[Category] = []
    for raw_key, entry in data.items():
        if not isinstance(entry, Mapping):
            continue
        mode = SelectionMode.parse(entry.get("select_type"))
        if mode is None:
            logger.warning(
                "Skipping equipment category %s with unknown select_type %r",
                raw_key,
                entry.get("select_type"),
            )
            continue
        category_id = str(raw_key)
        defaults: list[DefaultItem] = []
        for item in _dict_items(entry.get("default")):
            default = _default_from_item(item)
            if default is not None:
                defaults.append(default)
        options: list[Option] = []
        for item in _dict_items(entry.get("options")):
            option = _option_from_item(item, replaces=_first_replaced_id(item.get("replaces")))
            if option is not None:
                options.append(option)
        name = str(entry.get("name") or "").strip() or category_id.replace("_", " ").title()
        required = bool(entry.get("required", mode is SelectionMode.SINGLE))
        category = _build_category(category_id, name, mode, defaults, options, required)
        if category is not None:
            categories.append(category)
    return categories


def _bucket_groups(raw: Any) -> list[tuple[int | None, list[Mapping[str, Any]]]]:
    if not isinstance(raw, (list, tuple)) or not raw:
        return []
    if all(isinstance(entry, (list, tuple)) for entry in raw):
        return [(index, _dict_items(group)) for index, group in enumerate(raw)]
    return [(None, _dict_items(raw))]


def _group_category(
    mode: SelectionMode,
    bucket: str,
    index: int | None,
    items: Sequence[Mapping[str, Any]],
) -> Category | None:
    title = bucket.replace("_", " ").title()
    if index is None:
        category_id = f"{mode.value}_{bucket}"
        name = title
    else:
        category_id = f"{mode.value}_{bucket}_{index}"
        name = f"{title} {index + 1}"

    defaults: list[DefaultItem] = []
    options: list[Option] = []
    if mode.has_defaults:
        for item in items:
            if not item.get("is_default"):
                continue
            default = _default_from_item(item)
            if default is None:
                continue
            defaults.append(default)
            for replacement in _dict_items(item.get("replacements")):
                option = _option_from_item(replacement, replaces=default.equipment_id)
                if option is not None:
                    options.append(option)
    else:
        for item in items:
            option = _option_from_item(item)
            if option is not None:
                options.append(option)
    return _build_category(
        category_id,
        name,
        mode,
        defaults,
        options,
        required=mode is SelectionMode.SINGLE,
    )


def _normalize_current(data: Mapping[str, Any]) -> list[Category]:
    categories: list[Category] = []
    for mode in MODE_ORDER:
        section = data.get(mode.value)
        if not isinstance(section, Mapping):
            continue
        buckets = [bucket for bucket in EQUIPMENT_BUCKETS if bucket in section]
        buckets.extend(str(key) for key in section if str(key) not in buckets)
        for bucket in buckets:
            for index, items in _bucket_groups(section.get(bucket)):
                category = _group_category(mode, bucket, index, items)
                if category is not None:
                    categories.append(category)
    return categories


def normalize_equipment_selection(raw: Any) -> list[Category]:
    """Return the canonical categories described by ``raw``.

    Absent, empty or unrecognized payloads produce an empty list. Categories
    ending up with neither defaults nor options are left out.
    """

    data = ensure_json_dict(raw)
    if not data:
        return []
    shape = detect_selection_shape(data)
    if shape == SHAPE_LEGACY:
        categories = _normalize_legacy(data)
    elif shape == SHAPE_CURRENT:
        categories = _normalize_current(data)
    else:
        logger.warning(
            "Unrecognized equipment_selection payload with keys %s",
            sorted(str(key) for key in data),
        )
        return []
    logger.debug("Normalized %s equipment_selection into %d categories", shape, len(categories))
    return categories


def categories_payload(categories: Iterable[Category]) -> list[dict[str, Any]]:
    return [category.payload for category in categories]
