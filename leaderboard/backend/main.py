from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leaderboard.backend.routers import admin, queue, results, submissions
from leaderboard.config import get_settings
from leaderboard.database.db import Base, engine

structlog.configure(processors=[structlog.processors.TimeStamper(fmt="iso"), structlog.processors.JSONRenderer()])
log = structlog.get_logger()

app = FastAPI(title="Open Writing Leaderboard", version="0.1.0")

allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    get_settings().frontend_origin,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)
    log.info("startup_complete")


@app.get("/health")
def healthcheck() -> dict[str, Any]:
    return {"status": "ok"}


app.include_router(submissions.router)
app.include_router(queue.router)
app.include_router(results.router)
app.include_router(admin.router)
