import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Configure Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)

# Load .env from the script's directory before the portal settings are read
env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(dotenv_path=env_path, override=False)

from backend.portal_module import functions_router, init_portal_module, router as portal_router  # noqa: E402
from backend.portal_module.config import settings  # noqa: E402
from backend.portal_module.database import engine  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing portal module...")
    init_portal_module()
    logger.info("Portal module initialized.")
    yield
    logger.info("Shutting down...")


app = FastAPI(title="School Portal API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(settings.storage_dir, exist_ok=True)
app.mount(settings.storage_public_base, StaticFiles(directory=settings.storage_dir), name="storage")
app.include_router(portal_router)
app.include_router(functions_router)


@app.get("/api/health")
async def health_check():
    """Verify the backend is running and the database answers."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as exc:
        logger.error("Health check database error: %s", exc)
        db_status = "error"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
        "email": "configured" if settings.smtp_username and settings.smtp_password else "simulated",
        "assistant": "configured" if settings.groq_api_key else "disabled",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.backend:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
