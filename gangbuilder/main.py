from __future__ import annotations

import logging

from fastapi import FastAPI

from .config import DEBUG
from .db import init_db
from .routers import fighter_types, gangs

logger = logging.getLogger(__name__)

app = FastAPI(debug=DEBUG)


@app.on_event("startup")
def startup_event() -> None:
    init_db()
    logger.info("Application started")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(fighter_types.router)
app.include_router(gangs.router)
