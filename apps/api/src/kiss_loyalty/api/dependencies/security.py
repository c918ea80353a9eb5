import secrets

from fastapi import Header, HTTPException, Request, status
from loguru import logger

from kiss_loyalty.core.settings import settings


async def require_admin_api_key(
    request: Request,
    x_api_key: str = Header("", alias="X-API-Key"),
) -> None:
    """Guard operator routes (draws, adjustments, analytics). Open when no key is configured."""

    expected = settings.admin_api_key
    if not expected:
        return

    if not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        logger.warning("Rejected admin request", path=request.url.path, key_present=bool(x_api_key))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
