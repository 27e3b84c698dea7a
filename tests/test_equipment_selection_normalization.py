from __future__ import annotations

import glob
import json
import os
import sys
from pathlib import Path
from typing import Any, Iterable

import pytest
import yaml

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from gangbuilder.services.equipment_selection import (
    SHAPE_CURRENT,
    SHAPE_LEGACY,
    Category,
    SelectionMode,
    detect_selection_shape,
    normalize_equipment_selection,
)


FIXTURE_DIR = Path(__file__).parent / "fixtures" / "equipment_selection"


def _load_fixtures() -> Iterable[tuple[str, dict[str, Any]]]:
    for path in sorted(glob.glob(str(FIXTURE_DIR / "*.yml"))):
        with open(path, "r", encoding="utf-8") as handle:
            yield os.path.basename(path), yaml.safe_load(handle)


def _summary(categories: list[Category]) -> list[dict[str, Any]]:
    return [
        {
            "mode": category.mode.value,
            "required": category.required,
            "defaults": [[item.equipment_id, item.quantity] for item in category.defaults],
            "options": [
                [option.equipment_id, option.cost, option.max_quantity]
                for option in category.options
            ],
        }
        for category in categories
    ]


_FIXTURES = list(_load_fixtures())


@pytest.mark.parametrize(
    "fixture_name, fixture", _FIXTURES, ids=[name for name, _ in _FIXTURES]
)
def test_legacy_and_current_shapes_normalize_identically(fixture_name, fixture) -> None:
    legacy = normalize_equipment_selection(fixture["legacy"])
    current = normalize_equipment_selection(fixture["current"])

    assert _summary(legacy) == fixture["expected"], fixture_name
    assert _summary(current) == fixture["expected"], fixture_name


def test_json_text_is_decoded_like_a_mapping() -> None:
    payload = {
        "multiple": {
            "wargear": [{"id": "flak_armour", "cost": 10}],
        }
    }

    from_text = normalize_equipment_selection(json.dumps(payload))
    from_dict = normalize_equipment_selection(payload)

    assert from_text == from_dict
    assert from_text[0].id == "multiple_wargear"


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "not json", "[1, 2]", b"{broken", {}, {"foo": 1}, {"weapons": []}, 42],
)
def test_malformed_payloads_produce_no_categories(raw) -> None:
    assert normalize_equipment_selection(raw) == []


def test_shape_detection() -> None:
    assert detect_selection_shape({"x": {"select_type": "single"}}) == SHAPE_LEGACY
    assert detect_selection_shape({"optional": {}, "single": {}}) == SHAPE_CURRENT
    assert detect_selection_shape({"optional": {}, "other": {}}) is None
    assert detect_selection_shape(None) is None


def test_grouped_buckets_emit_one_category_per_group() -> None:
    payload = {
        "optional_single": {
            "weapons": [
                [
                    {
                        "id": "shotgun",
                        "is_default": True,
                        "replacements": [{"id": "lasgun", "cost": 20}],
                    }
                ],
                [
                    {
                        "id": "autopistol",
                        "is_default": True,
                        "replacements": [{"id": "stub_gun", "cost": 5}],
                    }
                ],
            ]
        }
    }

    categories = normalize_equipment_selection(payload)

    assert [category.id for category in categories] == [
        "optional_single_weapons_0",
        "optional_single_weapons_1",
    ]
    assert [category.name for category in categories] == ["Weapons 1", "Weapons 2"]
    assert categories[1].options[0].replaces == "autopistol"


def test_modes_follow_fixed_order_and_buckets_weapons_first() -> None:
    payload = {
        "optional": {
            "wargear": [
                {"id": "std_rounds", "is_default": True, "replacements": [{"id": "dumdum"}]}
            ]
        },
        "multiple": {
            "wargear": [{"id": "flak_armour", "cost": 10}],
            "weapons": [{"id": "frag_grenades", "cost": 30}],
        },
        "single": {"weapons": [{"id": "autopistol", "cost": 10}]},
    }

    categories = normalize_equipment_selection(payload)

    assert [category.id for category in categories] == [
        "single_weapons",
        "multiple_weapons",
        "multiple_wargear",
        "optional_wargear",
    ]
    assert categories[0].required is True
    assert categories[1].required is False


def test_single_and_multiple_never_carry_defaults() -> None:
    payload = {
        "sidearm": {
            "select_type": "single",
            "default": [{"id": "autopistol", "quantity": 1}],
            "options": [{"id": "stub_gun", "cost": 5}],
        },
        "extras": {
            "select_type": "multiple",
            "default": [{"id": "flak_armour", "quantity": 1}],
            "options": [{"id": "mesh_armour", "cost": 15}],
        },
    }

    categories = normalize_equipment_selection(payload)

    assert [category.mode for category in categories] == [
        SelectionMode.SINGLE,
        SelectionMode.MULTIPLE,
    ]
    assert all(category.defaults == () for category in categories)


def test_unknown_select_type_and_empty_categories_are_dropped() -> None:
    payload = {
        "mystery": {"select_type": "pick_two", "options": [{"id": "lasgun"}]},
        "empty": {"select_type": "multiple", "options": []},
        "armour": {"select_type": "multiple", "options": [{"id": "flak_armour", "cost": 10}]},
    }

    categories = normalize_equipment_selection(payload)

    assert [category.id for category in categories] == ["armour"]
    assert categories[0].name == "Armour"


def test_defaults_only_category_is_kept() -> None:
    payload = {
        "ammo": {
            "select_type": "optional",
            "default": [{"id": "std_rounds", "quantity": 2}],
            "options": [],
        }
    }

    categories = normalize_equipment_selection(payload)

    assert len(categories) == 1
    assert categories[0].options == ()
    assert categories[0].default_total == 2


def test_item_fields_are_coerced() -> None:
    payload = {
        "extras": {
            "select_type": "multiple",
            "options": [
                {"id": "a", "cost": "abc", "max_quantity": 0},
                {"id": "b", "cost": -5, "max_quantity": "3"},
                {"id": "c", "cost": "12.5"},
                {"cost": 10},
                {"id": 7, "cost": 4.4},
            ],
        }
    }

    (category,) = normalize_equipment_selection(payload)

    assert [(option.equipment_id, option.cost, option.max_quantity) for option in category.options] == [
        ("a", 0, 1),
        ("b", 0, 3),
        ("c", 13, 1),
        ("7", 4, 1),
    ]


def test_duplicate_defaults_merge_and_zero_quantities_drop() -> None:
    payload = {
        "ammo": {
            "select_type": "optional",
            "default": [
                {"id": "std_rounds", "quantity": 1},
                {"id": "std_rounds", "quantity": 2},
                {"id": "hotshot", "quantity": 0},
            ],
            "options": [{"id": "dumdum", "cost": 5}],
        }
    }

    (category,) = normalize_equipment_selection(payload)

    assert [(item.equipment_id, item.quantity) for item in category.defaults] == [
        ("std_rounds", 3)
    ]


def test_duplicate_replacements_overwrite_in_place() -> None:
    payload = {
        "optional": {
            "weapons": [
                {
                    "id": "shotgun",
                    "is_default": True,
                    "replacements": [{"id": "lasgun", "cost": 20}, {"id": "bolter", "cost": 35}],
                },
                {
                    "id": "autopistol",
                    "is_default": True,
                    "replacements": [{"id": "lasgun", "cost": 25}],
                },
                {"id": "plasma_gun", "cost": 60},
            ]
        }
    }

    (category,) = normalize_equipment_selection(payload)

    assert [(option.equipment_id, option.cost) for option in category.options] == [
        ("lasgun", 25),
        ("bolter", 35),
    ]
    assert category.option("lasgun").replaces == "autopistol"
    assert [item.equipment_id for item in category.defaults] == ["shotgun", "autopistol"]


def test_category_payload_is_json_ready() -> None:
    payload = {
        "ammo": {
            "name": "Ammo",
            "select_type": "optional",
            "default": [{"id": "std_rounds", "quantity": 3}],
            "options": [{"id": "dumdum", "cost": 5, "replaces": "std_rounds"}],
        }
    }

    (category,) = normalize_equipment_selection(payload)

    assert json.loads(json.dumps(category.payload)) == {
        "id": "ammo",
        "name": "Ammo",
        "mode": "optional",
        "required": False,
        "defaults": [{"equipment_id": "std_rounds", "name": "", "quantity": 3, "cost": 0}],
        "options": [
            {
                "equipment_id": "dumdum",
                "name": "",
                "cost": 5,
                "max_quantity": 1,
                "replaces": "std_rounds",
            }
        ],
    }
