from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .services.utils import ensure_json_dict


STAT_FIELDS = (
    "movement",
    "weapon_skill",
    "ballistic_skill",
    "strength",
    "toughness",
    "wounds",
    "initiative",
    "attacks",
    "leadership",
    "cool",
    "willpower",
    "intelligence",
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


def touch_timestamps(mapper, connection, target) -> None:  # pragma: no cover - SQLAlchemy hook
    now = datetime.utcnow()
    if getattr(target, "created_at", None) is None:
        target.created_at = now
    target.updated_at = now


class StatsMixin:
    movement: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    weapon_skill: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ballistic_skill: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    strength: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    toughness: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wounds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    initiative: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attacks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    leadership: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cool: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    willpower: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    intelligence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def stats(self) -> dict[str, int]:
        return {name: int(getattr(self, name, 0) or 0) for name in STAT_FIELDS}


class GangType(TimestampMixin, Base):
    __tablename__ = "gang_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)

    gangs: Mapped[List["Gang"]] = relationship(back_populates="gang_type")
    fighter_types: Mapped[List["FighterType"]] = relationship(back_populates="gang_type")


class Gang(TimestampMixin, Base):
    __tablename__ = "gangs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    gang_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("gang_types.id"), nullable=True)
    credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    gang_type: Mapped[Optional[GangType]] = relationship(back_populates="gangs")
    fighters: Mapped[List["Fighter"]] = relationship(
        back_populates="gang",
        cascade="all, delete-orphan",
        order_by="Fighter.id",
    )


class Equipment(TimestampMixin, Base):
    __tablename__ = "equipment"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    equipment_name: Mapped[str] = mapped_column(String(120), nullable=False)
    equipment_type: Mapped[str] = mapped_column(String(50), nullable=False, default="wargear")
    equipment_category: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    cost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class FighterType(StatsMixin, TimestampMixin, Base):
    __tablename__ = "fighter_types"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    fighter_type: Mapped[str] = mapped_column(String(120), nullable=False)
    fighter_class: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    gang_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("gang_types.id"), nullable=True)
    cost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    special_rules: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    equipment_selection_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    gang_type: Mapped[Optional[GangType]] = relationship(back_populates="fighter_types")
    gang_costs: Mapped[List["FighterTypeGangCost"]] = relationship(
        back_populates="fighter_type", cascade="all, delete-orphan"
    )
    default_equipment: Mapped[List["FighterTypeDefaultEquipment"]] = relationship(
        back_populates="fighter_type",
        cascade="all, delete-orphan",
        order_by="FighterTypeDefaultEquipment.id",
    )

    @property
    def equipment_selection(self) -> dict[str, Any] | None:
        return ensure_json_dict(self.equipment_selection_json)

    @property
    def special_rules_list(self) -> list[str]:
        text = self.special_rules or ""
        return [rule.strip() for rule in text.split(",") if rule.strip()]

    def adjusted_cost(self, gang_type_id: int | None) -> int:
        if gang_type_id is not None:
            for entry in self.gang_costs:
                if entry.gang_type_id == gang_type_id:
                    return int(entry.adjusted_cost)
        return int(self.cost or 0)


class FighterTypeGangCost(TimestampMixin, Base):
    __tablename__ = "fighter_type_gang_costs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fighter_type_id: Mapped[str] = mapped_column(ForeignKey("fighter_types.id"), nullable=False)
    gang_type_id: Mapped[int] = mapped_column(ForeignKey("gang_types.id"), nullable=False)
    adjusted_cost: Mapped[int] = mapped_column(Integer, nullable=False)

    fighter_type: Mapped[FighterType] = relationship(back_populates="gang_costs")
    gang_type: Mapped[GangType] = relationship()


class FighterTypeDefaultEquipment(TimestampMixin, Base):
    """One copy of an item every fighter of the type starts with."""

    __tablename__ = "fighter_type_default_equipment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fighter_type_id: Mapped[str] = mapped_column(ForeignKey("fighter_types.id"), nullable=False)
    equipment_id: Mapped[str] = mapped_column(ForeignKey("equipment.id"), nullable=False)

    fighter_type: Mapped[FighterType] = relationship(back_populates="default_equipment")
    equipment: Mapped[Equipment] = relationship()


class Fighter(StatsMixin, TimestampMixin, Base):
    __tablename__ = "fighters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gang_id: Mapped[int] = mapped_column(ForeignKey("gangs.id"), nullable=False)
    fighter_type_id: Mapped[str] = mapped_column(ForeignKey("fighter_types.id"), nullable=False)
    fighter_name: Mapped[str] = mapped_column(String(120), nullable=False)
    fighter_type: Mapped[str] = mapped_column(String(120), nullable=False)
    fighter_class: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    cost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rating_cost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    special_rules: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    gang: Mapped[Gang] = relationship(back_populates="fighters")
    definition: Mapped[FighterType] = relationship()
    equipment: Mapped[List["FighterEquipment"]] = relationship(
        back_populates="fighter",
        cascade="all, delete-orphan",
        order_by="FighterEquipment.id",
    )


class FighterEquipment(TimestampMixin, Base):
    __tablename__ = "fighter_equipment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fighter_id: Mapped[int] = mapped_column(ForeignKey("fighters.id"), nullable=False)
    equipment_id: Mapped[str] = mapped_column(ForeignKey("equipment.id"), nullable=False)
    original_cost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    purchase_cost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    fighter: Mapped[Fighter] = relationship(back_populates="equipment")
    equipment: Mapped[Equipment] = relationship()


for cls in [
    GangType,
    Gang,
    Equipment,
    FighterType,
    FighterTypeGangCost,
    FighterTypeDefaultEquipment,
    Fighter,
    FighterEquipment,
]:
    event.listen(cls, "before_insert", touch_timestamps)
    event.listen(cls, "before_update", touch_timestamps)
