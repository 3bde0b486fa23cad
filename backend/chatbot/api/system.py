from fastapi import APIRouter

from chatbot.db import postgres
from chatbot.models.system import HealthResponse
from chatbot.config import get_settings

router = APIRouter(prefix="/api/system", tags=["system"])


async def check_postgres() -> bool:
    try:
        row = await postgres.fetch_one("SELECT 1")
        return row is not None
    except Exception:
        return False


@router.get("/health", response_model=HealthResponse)
async def health():
    settings = get_settings()
    postgres_ok = await check_postgres()

    return {
        "status": "ok" if postgres_ok else "error",
        "dependencies": {
            "postgres": "connected" if postgres_ok else "error",
            "model_provider": settings.model_provider,
        },
    }
