from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..db import get_db
from ..schemas import SelectionRequest
from ..services import costs, utils
from ..services.equipment_selection import (
    Category,
    categories_payload,
    detect_selection_shape,
    normalize_equipment_selection,
)
from ..services.manifest import build_loadout
from ..services.selection_state import SelectionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fighter-types", tags=["fighter-types"])


def _fighter_type_eager_options() -> tuple:
    return (
        selectinload(models.FighterType.gang_costs),
        selectinload(models.FighterType.default_equipment).selectinload(
            models.FighterTypeDefaultEquipment.equipment
        ),
    )


def _get_fighter_type(db: Session, fighter_type_id: str) -> models.FighterType:
    fighter_type = (
        db.execute(
            select(models.FighterType)
            .options(*_fighter_type_eager_options())
            .where(models.FighterType.id == fighter_type_id)
        )
        .scalars()
        .first()
    )
    if fighter_type is None:
        raise HTTPException(status_code=404, detail="Fighter type not found")
    return fighter_type


def fighter_type_categories(fighter_type: models.FighterType) -> list[Category]:
    return normalize_equipment_selection(fighter_type.equipment_selection)


def _fighter_type_payload(
    fighter_type: models.FighterType,
    gang_type_id: int | None = None,
) -> dict[str, Any]:
    categories = fighter_type_categories(fighter_type)
    return {
        "id": fighter_type.id,
        "fighter_type": fighter_type.fighter_type,
        "fighter_class": fighter_type.fighter_class,
        "gang_type_id": fighter_type.gang_type_id,
        "cost": fighter_type.cost,
        "base_cost": fighter_type.adjusted_cost(gang_type_id),
        "special_rules": fighter_type.special_rules_list,
        "stats": fighter_type.stats,
        "selection_shape": detect_selection_shape(fighter_type.equipment_selection),
        "default_equipment": [
            {
                "equipment_id": default.equipment_id,
                "equipment_name": default.equipment.equipment_name if default.equipment else "",
            }
            for default in fighter_type.default_equipment
        ],
        "categories": categories_payload(categories),
    }


def _selection_change(payload: SelectionRequest) -> costs.SelectionChange | None:
    if payload.keep_default:
        return costs.SelectionChange(category_id=payload.keep_default, keep_default=True)
    if payload.toggle is not None:
        return costs.SelectionChange(
            category_id=payload.toggle.category_id,
            option_id=payload.toggle.option_id,
            selected=payload.toggle.selected,
        )
    return None


@router.get("")
def list_fighter_types(
    gang_type_id: int | None = None,
    db: Session = Depends(get_db),
):
    query = (
        select(models.FighterType)
        .options(*_fighter_type_eager_options())
        .order_by(models.FighterType.fighter_type)
    )
    if gang_type_id is not None:
        query = query.where(
            or_(
                models.FighterType.gang_type_id == gang_type_id,
                models.FighterType.gang_type_id.is_(None),
            )
        )
    fighter_types = db.execute(query).scalars().all()
    payload = [
        _fighter_type_payload(fighter_type, gang_type_id) for fighter_type in fighter_types
    ]
    return JSONResponse(utils.json_safe(payload))


@router.get("/{fighter_type_id}")
def get_fighter_type(
    fighter_type_id: str,
    gang_type_id: int | None = None,
    db: Session = Depends(get_db),
):
    fighter_type = _get_fighter_type(db, fighter_type_id)
    return JSONResponse(utils.json_safe(_fighter_type_payload(fighter_type, gang_type_id)))


@router.post("/{fighter_type_id}/selection")
def preview_selection(
    fighter_type_id: str,
    payload: SelectionRequest | None = Body(default=None),
    db: Session = Depends(get_db),
):
    """Replay a selection snapshot, apply one change and price the result."""

    payload = payload or SelectionRequest()
    fighter_type = _get_fighter_type(db, fighter_type_id)
    categories = fighter_type_categories(fighter_type)
    base_cost = fighter_type.adjusted_cost(payload.gang_type_id)

    state = SelectionState.from_snapshot(categories, payload.selections)
    total_cost = costs.resolve_loadout_cost(
        base_cost,
        state,
        _selection_change(payload),
        current_cost=payload.cost,
    )
    loadout = build_loadout(base_cost, categories, state)

    response = {
        "fighter_type_id": fighter_type.id,
        "selections": state.snapshot(),
        "remaining_defaults": {
            category.id: state.remaining_defaults(category.id)
            for category in categories
            if category.mode.has_defaults
        },
        "manifest": loadout.payload["manifest"],
        "base_cost": loadout.base_cost,
        "options_cost": loadout.options_cost,
        "total_cost": total_cost,
        "missing_required": [
            {"id": category.id, "name": category.name}
            for category in state.missing_required()
        ],
    }
    return JSONResponse(utils.json_safe(response))
