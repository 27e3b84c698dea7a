from pydantic import BaseModel, Field


class ManifestItem(BaseModel):
    equipment_id: str = Field(..., min_length=1, max_length=64)
    cost: int | float | str | None = 0
    quantity: int = Field(1, ge=0)


class SelectionToggle(BaseModel):
    category_id: str
    option_id: str
    selected: bool | None = None


class SelectionRequest(BaseModel):
    selections: dict[str, list[str]] = Field(default_factory=dict)
    toggle: SelectionToggle | None = None
    keep_default: str | None = None
    cost: int | float | str | None = None
    gang_type_id: int | None = None


class FighterSubmission(BaseModel):
    fighter_type_id: str
    fighter_name: str = Field(..., max_length=120)
    cost: int | float | str | None = None
    selected_equipment: list[ManifestItem] | None = None
    default_equipment: list[ManifestItem] | None = None
    selections: dict[str, list[str]] | None = None
    use_base_cost_for_rating: bool = False
