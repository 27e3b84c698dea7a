from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models
from .costs import parse_cost
from .utils import coerce_int

logger = logging.getLogger(__name__)


class FighterCreationError(Exception):
    """Raised when a fighter cannot be added to a gang."""


def _equipment_items(raw: Any) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    if not isinstance(raw, (list, tuple)):
        return items
    for entry in raw:
        if isinstance(entry, Mapping):
            data = entry
        else:
            data = {
                "equipment_id": getattr(entry, "equipment_id", None),
                "cost": getattr(entry, "cost", 0),
                "quantity": getattr(entry, "quantity", 1),
            }
        equipment_id = data.get("equipment_id")
        if equipment_id is None or not str(equipment_id).strip():
            continue
        items.append(
            {
                "equipment_id": str(equipment_id).strip(),
                "cost": parse_cost(data.get("cost")),
                "quantity": max(coerce_int(data.get("quantity"), 1), 0),
            }
        )
    return items


def _submission_value(submission: Any, key: str, default: Any = None) -> Any:
    if isinstance(submission, Mapping):
        return submission.get(key, default)
    return getattr(submission, key, default)


def equipment_cost(selected_equipment: Iterable[Mapping[str, Any]]) -> int:
    return sum(item["cost"] * item["quantity"] for item in selected_equipment)


def _load_gang(db: Session, gang_id: int) -> models.Gang | None:
    return (
        db.execute(
            select(models.Gang)
            .options(selectinload(models.Gang.fighters))
            .where(models.Gang.id == gang_id)
        )
        .scalars()
        .first()
    )


def _load_fighter_type(db: Session, fighter_type_id: Any) -> models.FighterType | None:
    if fighter_type_id is None:
        return None
    return (
        db.execute(
            select(models.FighterType)
            .options(
                selectinload(models.FighterType.gang_costs),
                selectinload(models.FighterType.default_equipment).selectinload(
                    models.FighterTypeDefaultEquipment.equipment
                ),
            )
            .where(models.FighterType.id == str(fighter_type_id))
        )
        .scalars()
        .first()
    )


def _check_equipment_exists(db: Session, equipment_ids: set[str]) -> None:
    if not equipment_ids:
        return
    found = set(
        db.execute(
            select(models.Equipment.id).where(models.Equipment.id.in_(equipment_ids))
        ).scalars()
    )
    missing = sorted(equipment_ids - found)
    if missing:
        raise FighterCreationError(f"Unknown equipment: {', '.join(missing)}")


def add_fighter_to_gang(db: Session, gang_id: int, submission: Any) -> models.Fighter:
    """Price ``submission``, persist the fighter with its equipment and charge the gang.

    ``submission`` is the payload assembled by
    :func:`gangbuilder.services.manifest.build_submission` (a mapping or an
    object exposing the same attributes). Nothing is written when any check
    fails.
    """

    fighter_name = str(_submission_value(submission, "fighter_name") or "").rstrip()
    if not fighter_name.strip():
        raise FighterCreationError("Fighter name is required")

    gang = _load_gang(db, gang_id)
    if gang is None:
        raise FighterCreationError("Gang not found")
    fighter_type = _load_fighter_type(db, _submission_value(submission, "fighter_type_id"))
    if fighter_type is None:
        raise FighterCreationError("Fighter type not found")

    selected_equipment = _equipment_items(_submission_value(submission, "selected_equipment"))
    default_equipment = _equipment_items(_submission_value(submission, "default_equipment"))

    base_cost = fighter_type.adjusted_cost(gang.gang_type_id)
    fighter_cost = parse_cost(_submission_value(submission, "cost"), base_cost)
    selected_cost = equipment_cost(selected_equipment)
    if _submission_value(submission, "use_base_cost_for_rating", False):
        rating_cost = base_cost + selected_cost
    else:
        rating_cost = fighter_cost

    if fighter_cost > 0 and gang.credits < fighter_cost:
        raise FighterCreationError("Not enough credits to add this fighter with equipment")

    _check_equipment_exists(
        db,
        {item["equipment_id"] for item in [*selected_equipment, *default_equipment]},
    )

    fighter = models.Fighter(
        gang=gang,
        definition=fighter_type,
        fighter_name=fighter_name,
        fighter_type=fighter_type.fighter_type,
        fighter_class=fighter_type.fighter_class,
        cost=fighter_cost,
        rating_cost=rating_cost,
        special_rules=fighter_type.special_rules,
        **fighter_type.stats,
    )

    # Type defaults come first and win over submitted defaults with the same id.
    added_defaults: set[str] = set()
    for default in fighter_type.default_equipment:
        added_defaults.add(default.equipment_id)
        fighter.equipment.append(
            models.FighterEquipment(
                equipment_id=default.equipment_id,
                original_cost=default.equipment.cost if default.equipment else 0,
                purchase_cost=0,
                is_default=True,
            )
        )
    for item in default_equipment:
        if item["equipment_id"] in added_defaults:
            continue
        added_defaults.add(item["equipment_id"])
        for _ in range(item["quantity"]):
            fighter.equipment.append(
                models.FighterEquipment(
                    equipment_id=item["equipment_id"],
                    original_cost=item["cost"],
                    purchase_cost=0,
                    is_default=True,
                )
            )
    for item in selected_equipment:
        for _ in range(item["quantity"]):
            fighter.equipment.append(
                models.FighterEquipment(
                    equipment_id=item["equipment_id"],
                    original_cost=item["cost"],
                    purchase_cost=0,
                    is_default=False,
                )
            )

    gang.credits -= fighter_cost
    gang.rating += rating_cost
    db.add(fighter)
    try:
        db.flush()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to add fighter %s to gang %s", fighter_name, gang_id)
        raise FighterCreationError("Failed to add fighter") from exc

    logger.info(
        "Added fighter %s (%s) to gang %s for %s credits, rating %s",
        fighter.id,
        fighter_type.id,
        gang.id,
        fighter_cost,
        rating_cost,
    )
    return fighter


def fighter_payload(fighter: models.Fighter) -> dict[str, Any]:
    return {
        "id": fighter.id,
        "gang_id": fighter.gang_id,
        "fighter_type_id": fighter.fighter_type_id,
        "fighter_name": fighter.fighter_name,
        "fighter_type": fighter.fighter_type,
        "fighter_class": fighter.fighter_class,
        "cost": fighter.cost,
        "rating_cost": fighter.rating_cost,
        "special_rules": [
            rule.strip() for rule in (fighter.special_rules or "").split(",") if rule.strip()
        ],
        "stats": fighter.stats,
        "equipment": [
            {
                "id": row.id,
                "equipment_id": row.equipment_id,
                "equipment_name": row.equipment.equipment_name if row.equipment else "",
                "original_cost": row.original_cost,
                "purchase_cost": row.purchase_cost,
                "is_default": row.is_default,
            }
            for row in fighter.equipment
        ],
    }


def gang_payload(gang: models.Gang) -> dict[str, Any]:
    return {
        "id": gang.id,
        "name": gang.name,
        "gang_type": gang.gang_type.name if gang.gang_type else None,
        "credits": gang.credits,
        "rating": gang.rating,
        "fighters": [fighter_payload(fighter) for fighter in gang.fighters],
    }
