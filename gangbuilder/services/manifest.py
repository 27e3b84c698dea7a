from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from .costs import options_cost, parse_cost
from .equipment_selection import Category
from .selection_state import SelectionState


class SelectionIncompleteError(Exception):
    """Raised when a required category is left without any equipment."""

    def __init__(self, categories: Iterable[Category]) -> None:
        self.categories = list(categories)
        names = ", ".join(category.name for category in self.categories)
        super().__init__(f"Equipment selection required for: {names}")


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    equipment_id: str
    cost: int
    quantity: int
    is_default: bool = False
    name: str = ""

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "equipment_id": self.equipment_id,
            "cost": self.cost,
            "quantity": self.quantity,
        }


@dataclass(frozen=True, slots=True)
class Loadout:
    base_cost: int
    options_cost: int
    manifest: tuple[ManifestEntry, ...]

    @property
    def total_cost(self) -> int:
        return self.base_cost + self.options_cost

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "base_cost": self.base_cost,
            "options_cost": self.options_cost,
            "total_cost": self.total_cost,
            "manifest": [
                {**entry.payload, "is_default": entry.is_default, "name": entry.name}
                for entry in self.manifest
            ],
        }


def _add_entry(
    entries: dict[tuple[str, bool, int], ManifestEntry],
    equipment_id: str,
    cost: int,
    quantity: int,
    is_default: bool,
    name: str,
) -> None:
    if quantity <= 0:
        return
    key = (equipment_id, is_default, cost)
    existing = entries.get(key)
    if existing is None:
        entries[key] = ManifestEntry(equipment_id, cost, quantity, is_default, name)
        return
    entries[key] = ManifestEntry(
        equipment_id,
        cost,
        existing.quantity + quantity,
        is_default,
        existing.name or name,
    )


def build_manifest(categories: Iterable[Category], state: SelectionState) -> list[ManifestEntry]:
    categories = list(categories)
    default_entries: dict[tuple[str, bool, int], ManifestEntry] = {}
    option_entries: dict[tuple[str, bool, int], ManifestEntry] = {}
    for category in categories:
        remaining = state.remaining_defaults(category.id)
        for item in category.defaults:
            _add_entry(
                default_entries,
                item.equipment_id,
                0,
                remaining.get(item.equipment_id, 0),
                True,
                item.name,
            )
    for category in categories:
        for option in state.selected_options(category.id):
            _add_entry(
                option_entries,
                option.equipment_id,
                option.cost,
                category.unit_quantity(option),
                False,
                option.name,
            )
    return [*default_entries.values(), *option_entries.values()]


def split_manifest(
    manifest: Sequence[ManifestEntry],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    selected = [entry.payload for entry in manifest if not entry.is_default]
    defaults = [entry.payload for entry in manifest if entry.is_default]
    return selected, defaults


def build_loadout(base_cost: Any, categories: Iterable[Category], state: SelectionState) -> Loadout:
    categories = list(categories)
    return Loadout(
        base_cost=parse_cost(base_cost),
        options_cost=options_cost(categories, state),
        manifest=tuple(build_manifest(categories, state)),
    )


def build_submission(
    fighter_type_id: Any,
    fighter_name: str,
    categories: Iterable[Category],
    state: SelectionState,
    *,
    base_cost: Any,
    cost: Any = None,
    use_base_cost_for_rating: bool = False,
) -> dict[str, Any]:
    """Assemble the payload handed to the fighter creation service.

    ``cost`` is the (possibly hand edited) fighter cost; when omitted the
    derived loadout total is used.
    """

    missing = state.missing_required()
    if missing:
        raise SelectionIncompleteError(missing)
    loadout = build_loadout(base_cost, categories, state)
    selected_equipment, default_equipment = split_manifest(loadout.manifest)
    return {
        "fighter_type_id": fighter_type_id,
        "fighter_name": fighter_name,
        "cost": parse_cost(cost, loadout.total_cost),
        "selected_equipment": selected_equipment,
        "default_equipment": default_equipment,
        "use_base_cost_for_rating": bool(use_base_cost_for_rating),
    }
