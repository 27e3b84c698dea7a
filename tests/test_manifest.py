from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from gangbuilder.services.equipment_selection import (
    Category,
    DefaultItem,
    Option,
    SelectionMode,
)
from gangbuilder.services.manifest import (
    SelectionIncompleteError,
    build_loadout,
    build_manifest,
    build_submission,
    split_manifest,
)
from gangbuilder.services.selection_state import SelectionState


def _sidearm() -> Category:
    return Category(
        id="sidearm",
        name="Sidearm",
        mode=SelectionMode.OPTIONAL_SINGLE,
        defaults=(DefaultItem("shotgun", 1, name="Shotgun"),),
        options=(Option("lasgun", cost=20), Option("bolter", cost=35)),
    )


def _ammo() -> Category:
    return Category(
        id="ammo",
        name="Ammo",
        mode=SelectionMode.OPTIONAL,
        defaults=(DefaultItem("std_rounds", 3),),
        options=(Option("dumdum", cost=5, max_quantity=1, replaces="std_rounds"),),
    )


def _pistol() -> Category:
    return Category(
        id="pistol",
        name="Pistol",
        mode=SelectionMode.SINGLE,
        options=(Option("autopistol", cost=10),),
        required=True,
    )


def _rows(manifest) -> list[tuple[str, int, int]]:
    return [(entry.equipment_id, entry.cost, entry.quantity) for entry in manifest]


def test_optional_single_swap_manifest() -> None:
    categories = [_sidearm()]
    state = SelectionState(categories)
    assert _rows(build_manifest(categories, state)) == [("shotgun", 0, 1)]

    state.toggle("sidearm", "lasgun")
    assert _rows(build_manifest(categories, state)) == [("lasgun", 20, 1)]

    state.toggle("sidearm", "bolter")
    assert _rows(build_manifest(categories, state)) == [("bolter", 35, 1)]
    assert build_loadout(100, categories, state).total_cost == 135

    state.keep_default("sidearm")
    assert _rows(build_manifest(categories, state)) == [("shotgun", 0, 1)]
    assert build_loadout(100, categories, state).total_cost == 100


def test_optional_partial_replace_manifest() -> None:
    categories = [_ammo()]
    state = SelectionState(categories)

    state.toggle("ammo", "dumdum")
    assert _rows(build_manifest(categories, state)) == [("std_rounds", 0, 2), ("dumdum", 5, 1)]

    state.toggle("ammo", "dumdum")
    assert _rows(build_manifest(categories, state)) == [("std_rounds", 0, 3)]


def test_defaults_shared_between_categories_are_merged() -> None:
    categories = [
        _ammo(),
        Category(
            id="spare_ammo",
            name="Spare Ammo",
            mode=SelectionMode.OPTIONAL,
            defaults=(DefaultItem("std_rounds", 2),),
            options=(Option("std_rounds", cost=1),),
        ),
    ]
    state = SelectionState(categories)
    state.toggle("spare_ammo", "std_rounds")

    manifest = build_manifest(categories, state)

    assert _rows(manifest) == [("std_rounds", 0, 4), ("std_rounds", 1, 1)]
    assert [entry.is_default for entry in manifest] == [True, False]


def test_split_manifest_separates_defaults() -> None:
    categories = [_ammo(), _pistol()]
    state = SelectionState.from_snapshot(categories, {"ammo": ["dumdum"], "pistol": ["autopistol"]})

    selected, defaults = split_manifest(build_manifest(categories, state))

    assert selected == [
        {"equipment_id": "dumdum", "cost": 5, "quantity": 1},
        {"equipment_id": "autopistol", "cost": 10, "quantity": 1},
    ]
    assert defaults == [{"equipment_id": "std_rounds", "cost": 0, "quantity": 2}]


def test_loadout_payload_lists_costs_and_manifest() -> None:
    categories = [_sidearm()]
    state = SelectionState(categories)

    payload = build_loadout("90", categories, state).payload

    assert payload == {
        "base_cost": 90,
        "options_cost": 0,
        "total_cost": 90,
        "manifest": [
            {
                "equipment_id": "shotgun",
                "cost": 0,
                "quantity": 1,
                "is_default": True,
                "name": "Shotgun",
            }
        ],
    }


def test_submission_uses_derived_total_when_cost_not_edited() -> None:
    categories = [_sidearm(), _ammo(), _pistol()]
    state = SelectionState.from_snapshot(
        categories, {"sidearm": ["lasgun"], "pistol": ["autopistol"]}
    )

    submission = build_submission(
        "escher_champion",
        "Vex ",
        categories,
        state,
        base_cost=95,
        use_base_cost_for_rating=1,
    )

    assert submission == {
        "fighter_type_id": "escher_champion",
        "fighter_name": "Vex ",
        "cost": 125,
        "selected_equipment": [
            {"equipment_id": "lasgun", "cost": 20, "quantity": 1},
            {"equipment_id": "autopistol", "cost": 10, "quantity": 1},
        ],
        "default_equipment": [{"equipment_id": "std_rounds", "cost": 0, "quantity": 3}],
        "use_base_cost_for_rating": True,
    }


def test_submission_keeps_edited_cost() -> None:
    categories = [_pistol()]
    state = SelectionState.from_snapshot(categories, {"pistol": ["autopistol"]})

    submission = build_submission("ganger", "Ana", categories, state, base_cost=50, cost="42.5")

    assert submission["cost"] == 43


@pytest.mark.parametrize("cost", ["abc", "NaN", [10]])
def test_submission_ignores_unreadable_cost(cost) -> None:
    categories = [_pistol()]
    state = SelectionState.from_snapshot(categories, {"pistol": ["autopistol"]})

    submission = build_submission("ganger", "Ana", categories, state, base_cost=50, cost=cost)

    assert submission["cost"] == 60


def test_submission_blocked_when_required_category_is_empty() -> None:
    categories = [_pistol(), _sidearm()]
    state = SelectionState(categories)

    with pytest.raises(SelectionIncompleteError) as excinfo:
        build_submission("ganger", "Ana", categories, state, base_cost=50)

    assert [category.id for category in excinfo.value.categories] == ["pistol"]
    assert "Pistol" in str(excinfo.value)
