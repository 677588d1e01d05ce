import hmac
import logging

from fastapi import Security, HTTPException, Header
from fastapi.security import APIKeyHeader

from orchestrator.settings import settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

def _matches(expected: str, given: str) -> bool:
    return hmac.compare_digest(expected.encode(), given.encode())

async def require_api_key(api_key: str = Security(API_KEY_HEADER)) -> None:
    """
    Guards privileged endpoints (enqueue, cancel, admin).
    With no API_KEY configured the endpoints are open, which is meant for local dev.
    """
    if not settings.API_KEY:
        return

    if not api_key:
        raise HTTPException(status_code=401, detail="Missing API Key")

    if not _matches(settings.API_KEY, api_key):
        logger.warning("Rejected request with invalid API key")
        raise HTTPException(status_code=403, detail="Invalid API Key")

async def require_cron_token(x_cron_token: str | None = Header(default=None, alias="X-Cron-Token")) -> None:
    # Unlike the API key there is no open mode: no token configured means no cron access.
    if not settings.CRON_TOKEN or not x_cron_token or not _matches(settings.CRON_TOKEN, x_cron_token):
        raise HTTPException(status_code=401, detail="Unauthorized")
