"""Log inspection and runtime log level routes."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel, field_validator

from ..logging_config import get_log_handler, get_logger, parse_log_level, set_log_level

logger = get_logger(__name__, namespace='api')

router = APIRouter(prefix="/api", tags=["logs"])


class LogLevelRequest(BaseModel):
    level: str

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Accept standard level names in any case."""
        parse_log_level(v)
        return v.strip().upper()


@router.get("/logs")
async def get_logs(count: int = 100):
    """Get recent buffered log entries."""
    logs = get_log_handler().get_history(count)
    return {'logs': logs, 'count': len(logs)}


@router.post("/log-level")
def update_log_level(request: LogLevelRequest):
    """Change the log level at runtime."""
    set_log_level(request.level)
    logger.info("Log level set to %s", request.level)
    return {
        'level': request.level,
        'effective': logging.getLevelName(logging.getLogger().getEffectiveLevel()),
    }
