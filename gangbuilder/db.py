import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from .config import DB_URL, DEFAULT_GANG_CREDITS, SEED_SAMPLE_DATA

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}
engine = create_engine(DB_URL, connect_args=connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

_SAMPLE_CATALOG_PATH = Path(__file__).resolve().parent / "data" / "sample_catalog.json"


class Base(DeclarativeBase):
    pass


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache()
def sample_catalog() -> dict[str, Any]:
    try:
        with _SAMPLE_CATALOG_PATH.open("r", encoding="utf-8") as fp:
            data = json.load(fp)
    except (FileNotFoundError, json.JSONDecodeError):
        logger.warning("Sample catalog missing or unreadable at %s", _SAMPLE_CATALOG_PATH)
        return {}
    return data if isinstance(data, dict) else {}


def _initialize_fighter_rating_costs(connection) -> None:
    logger.info("Initializing fighter rating costs from fighter costs")
    connection.execute(text("UPDATE fighters SET rating_cost = cost"))


def _initialize_default_equipment_flags(connection) -> None:
    logger.info("Flagging zero-cost fighter equipment rows as defaults")
    connection.execute(
        text(
            """
            UPDATE fighter_equipment
            SET is_default = 1
            WHERE purchase_cost = 0 AND original_cost = 0
            """
        )
    )


def _migrate_schema() -> None:
    from sqlalchemy import inspect

    if not DB_URL.startswith("sqlite"):
        return

    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())

        if "fighters" in table_names:
            column_names = {column["name"] for column in inspector.get_columns("fighters")}
            if "rating_cost" not in column_names:
                logger.info("Adding rating_cost column to fighters table")
                connection.execute(
                    text(
                        "ALTER TABLE fighters ADD COLUMN rating_cost INTEGER NOT NULL DEFAULT 0"
                    )
                )
                _initialize_fighter_rating_costs(connection)

        if "fighter_equipment" in table_names:
            column_names = {
                column["name"] for column in inspector.get_columns("fighter_equipment")
            }
            if "is_default" not in column_names:
                logger.info("Adding is_default column to fighter_equipment table")
                connection.execute(
                    text(
                        "ALTER TABLE fighter_equipment ADD COLUMN is_default BOOLEAN NOT NULL DEFAULT 0"
                    )
                )
                _initialize_default_equipment_flags(connection)


def seed_sample_data(session) -> None:
    from sqlalchemy import select

    from . import models

    catalog = sample_catalog()
    if not catalog:
        return
    if session.execute(select(models.FighterType)).first():
        return

    gang_types: dict[str, models.GangType] = {}
    for name in catalog.get("gang_types", []):
        gang_type = models.GangType(name=str(name))
        gang_types[str(name)] = gang_type
        session.add(gang_type)

    for entry in catalog.get("equipment", []):
        session.add(
            models.Equipment(
                id=str(entry["id"]),
                equipment_name=entry["equipment_name"],
                equipment_type=entry.get("equipment_type") or "wargear",
                equipment_category=entry.get("equipment_category"),
                cost=int(entry.get("cost") or 0),
            )
        )

    for entry in catalog.get("fighter_types", []):
        selection = entry.get("equipment_selection")
        fighter_type = models.FighterType(
            id=str(entry["id"]),
            fighter_type=entry["fighter_type"],
            fighter_class=entry.get("fighter_class"),
            gang_type=gang_types.get(entry.get("gang_type") or ""),
            cost=int(entry.get("cost") or 0),
            special_rules=", ".join(entry.get("special_rules") or []) or None,
            equipment_selection_json=(
                json.dumps(selection, ensure_ascii=False) if selection else None
            ),
            **{name: int(value) for name, value in (entry.get("stats") or {}).items()},
        )
        for gang_type_name, adjusted_cost in (entry.get("gang_costs") or {}).items():
            gang_type = gang_types.get(gang_type_name)
            if gang_type is None:
                continue
            fighter_type.gang_costs.append(
                models.FighterTypeGangCost(gang_type=gang_type, adjusted_cost=int(adjusted_cost))
            )
        for equipment_id in entry.get("default_equipment") or []:
            fighter_type.default_equipment.append(
                models.FighterTypeDefaultEquipment(equipment_id=str(equipment_id))
            )
        session.add(fighter_type)

    for entry in catalog.get("gangs", []):
        session.add(
            models.Gang(
                name=entry["name"],
                gang_type=gang_types.get(entry.get("gang_type") or ""),
                credits=int(entry.get("credits", DEFAULT_GANG_CREDITS)),
                rating=0,
            )
        )

    session.flush()


def init_db() -> None:
    from . import models  # noqa: F401

    db_path = Path(DB_URL.split("///")[-1]) if DB_URL.startswith("sqlite") else None
    first_start = db_path is not None and not db_path.exists()

    Base.metadata.create_all(bind=engine)
    _migrate_schema()

    if SEED_SAMPLE_DATA:
        with SessionLocal() as session:
            seed_sample_data(session)
            session.commit()

    if first_start:
        logger.info("Database initialized with sample data at %s", DB_URL)
