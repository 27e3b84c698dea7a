from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..db import get_db
from ..schemas import FighterSubmission
from ..services import fighters, utils
from ..services.equipment_selection import normalize_equipment_selection
from ..services.manifest import SelectionIncompleteError, build_submission
from ..services.selection_state import SelectionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gangs", tags=["gangs"])


def _gang_eager_options() -> tuple:
    return (
        selectinload(models.Gang.gang_type),
        selectinload(models.Gang.fighters)
        .selectinload(models.Fighter.equipment)
        .selectinload(models.FighterEquipment.equipment),
    )


def _get_gang(db: Session, gang_id: int) -> models.Gang:
    gang = (
        db.execute(
            select(models.Gang).options(*_gang_eager_options()).where(models.Gang.id == gang_id)
        )
        .scalars()
        .first()
    )
    if gang is None:
        raise HTTPException(status_code=404, detail="Gang not found")
    return gang


def _submission_from_selections(
    gang: models.Gang,
    fighter_type: models.FighterType,
    payload: FighterSubmission,
) -> dict[str, Any]:
    categories = normalize_equipment_selection(fighter_type.equipment_selection)
    state = SelectionState.from_snapshot(categories, payload.selections)
    try:
        return build_submission(
            fighter_type.id,
            payload.fighter_name,
            categories,
            state,
            base_cost=fighter_type.adjusted_cost(gang.gang_type_id),
            cost=payload.cost,
            use_base_cost_for_rating=payload.use_base_cost_for_rating,
        )
    except SelectionIncompleteError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(exc),
                "categories": [category.name for category in exc.categories],
            },
        ) from exc


@router.get("/{gang_id}")
def get_gang(gang_id: int, db: Session = Depends(get_db)):
    gang = _get_gang(db, gang_id)
    return JSONResponse(utils.json_safe(fighters.gang_payload(gang)))


@router.post("/{gang_id}/fighters")
def add_fighter(
    gang_id: int,
    payload: FighterSubmission = Body(...),
    db: Session = Depends(get_db),
):
    gang = _get_gang(db, gang_id)
    fighter_type = db.get(models.FighterType, payload.fighter_type_id)
    if fighter_type is None:
        raise HTTPException(status_code=404, detail="Fighter type not found")

    if payload.selected_equipment is None and payload.default_equipment is None:
        submission = _submission_from_selections(gang, fighter_type, payload)
    else:
        submission = payload.model_dump(exclude={"selections"})

    try:
        fighter = fighters.add_fighter_to_gang(db, gang.id, submission)
    except fighters.FighterCreationError as exc:
        logger.info("Rejected fighter for gang %s: %s", gang_id, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    db.refresh(gang)
    response = {
        "fighter": fighters.fighter_payload(fighter),
        "gang": {"id": gang.id, "credits": gang.credits, "rating": gang.rating},
    }
    return JSONResponse(utils.json_safe(response), status_code=201)
