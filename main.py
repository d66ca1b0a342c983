import json
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from core.log import configure_logging
from core.store import RecordStore
from db import AsyncSessionLocal, init_db
from api.diamonds import registry
from api.diamonds.views import router as diamonds_router
from api.diamonds.views import ledger_router
from api.participants.views import router as auth_router
from api.participants.views import participants_router


def get_cors_origins() -> list[str]:
    """Get CORS origins from environment variable or use defaults."""
    cors_env = os.environ.get("CORS_ORIGINS", "")

    # Try to parse as JSON array
    if cors_env:
        try:
            origins = json.loads(cors_env)
            if isinstance(origins, list):
                return origins
        except json.JSONDecodeError:
            # If not valid JSON, treat as comma-separated
            return [o.strip() for o in cors_env.split(",") if o.strip()]

    # Default origins for local development
    return [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = configure_logging(settings.LOG_LEVEL)
    if settings.DEBUG:
        # Local convenience; deployed environments run Alembic migrations
        await init_db()
    # Bring-up: the asset registry must exist before the first diamond is created
    async with AsyncSessionLocal() as session:
        await registry.initialize(RecordStore(session))
    logger.info("diamond ledger started (%s)", settings.APP_ENV)
    yield


app = FastAPI(
    title="Diamond Custody Ledger API",
    description="Tracks custody of diamonds from mine to scrap merchant",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Authentication and participant directory
app.include_router(auth_router, prefix="/api/v1")
app.include_router(participants_router, prefix="/api/v1")

# Ledger endpoints
app.include_router(diamonds_router, prefix="/api/v1")
app.include_router(ledger_router, prefix="/api/v1")


# Health check endpoint
@app.get("/health", tags=["system"])
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
