import json
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DATA_DIR = Path("data")
DATA_DIR.mkdir(exist_ok=True)

DB_URL = os.getenv("DB_URL", "sqlite:///./data/gangbuilder.db")
DEBUG = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes"}
SEED_SAMPLE_DATA = os.getenv("SEED_SAMPLE_DATA", "true").lower() in {"1", "true", "yes"}

COST_STRATEGIES = ("derived", "incremental")


def _load_choice(env_key: str, choices: tuple[str, ...], default: str) -> str:
    raw_value = (os.getenv(env_key) or "").strip().lower()
    return raw_value if raw_value in choices else default


def _load_int(env_key: str, default: int) -> int:
    raw_value = os.getenv(env_key)
    if not raw_value:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _load_json_list(env_key: str, default: list) -> list:
    raw_value = os.getenv(env_key)
    if not raw_value:
        return default
    try:
        parsed = json.loads(raw_value)
    except json.JSONDecodeError:
        return default
    return parsed if isinstance(parsed, list) else default


COST_STRATEGY = _load_choice("COST_STRATEGY", COST_STRATEGIES, "derived")
DEFAULT_GANG_CREDITS = _load_int("DEFAULT_GANG_CREDITS", 1000)
EQUIPMENT_BUCKETS = tuple(
    str(bucket).strip().lower()
    for bucket in _load_json_list("EQUIPMENT_BUCKETS", ["weapons", "wargear"])
    if str(bucket).strip()
) or ("weapons", "wargear")
