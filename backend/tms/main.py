import logging
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tms.api.auth import router as auth_router
from tms.api.dtr import router as dtr_router
from tms.api.nap_reports import router as nap_reports_router
from tms.api.reports import router as reports_router
from tms.api.users import router as users_router
from tms.api.zoom import router as zoom_router
from tms.core.config import settings

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    logger.info("Running Alembic migrations...")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
            cwd=settings.MIGRATIONS_CWD,
        )
        if result.returncode != 0:
            logger.error("Alembic migration failed:\n%s", result.stderr)
        else:
            logger.info("Migrations applied successfully:\n%s", result.stdout)
    except OSError as exc:
        logger.exception("Failed to run migrations: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Apply Alembic migrations on startup unless disabled."""
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        run_migrations()

    yield

    logger.info("Shutting down TeamBabe TMS backend.")


app = FastAPI(
    title="TeamBabe TMS API",
    description="Team management: daily time records, supervision, NAP reports and Zoom integration.",
    version="0.3.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(users_router, prefix="/api/users", tags=["Users"])
app.include_router(dtr_router, prefix="/api/dtr", tags=["DTR"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])
app.include_router(nap_reports_router, prefix="/api/nap-reports", tags=["NAP Reports"])
app.include_router(zoom_router, prefix="/api/zoom", tags=["Zoom"])


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    return {"status": "ok"}
