"""
WhatsApp SDR Agent - FastAPI Backend
REST API for running agent turns, reading the decision log, and managing
agent config, personas, and conversations.

Run: uvicorn src.api.app:app --reload --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src import config
from src.db import connection, models
from src.db.init_db import init_db, verify_db
from src.logging_config import setup_logging
from src.api.routers import agent, personas, funnel, conversations

logger = logging.getLogger("sdr.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    for err in config.validate():
        logger.warning("Config: %s", err)
    init_db(connection.DB_PATH)
    missing = verify_db(connection.DB_PATH)
    if missing:
        logger.error("Database is missing tables: %s", ", ".join(missing))
    yield


app = FastAPI(
    title="WhatsApp SDR Agent",
    description="Funnel-stage classification and reply generation for WhatsApp sales conversations.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── ROUTERS ─────────────────────────────────────────────────
app.include_router(agent.router)
app.include_router(personas.router)
app.include_router(funnel.router)
app.include_router(conversations.router)


# ─── HEALTH CHECK ───────────────────────────────────────────────

@app.get("/api/health")
def health():
    try:
        counts = models.get_table_counts()
        return {
            "status": "healthy",
            "tables": counts,
            "db_path": connection.DB_PATH,
            "oracle": {
                "model": config.OPENAI_MODEL,
                "configured": bool(config.OPENAI_API_KEY),
            },
        }
    except Exception as e:
        logger.error("Health check failed: %s", e)
        return JSONResponse(status_code=500, content={"status": "unhealthy", "error": str(e)})
