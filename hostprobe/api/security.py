"""
API key check for the HTTP service.

Accepted keys come from HOSTPROBE_API_KEY (comma separated for several keys).
With no key configured every request is refused.
"""
import logging
import os
from typing import FrozenSet

from fastapi import Depends, HTTPException, Security
from fastapi.security import APIKeyHeader
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_keys() -> FrozenSet[str]:
    raw = os.getenv("HOSTPROBE_API_KEY", "")
    return frozenset(key.strip() for key in raw.split(",") if key.strip())


async def verify_api_key(api_key: str = Security(api_key_header),
                         api_keys: FrozenSet[str] = Depends(get_api_keys)) -> str:
    """Verify API key for protected endpoints"""
    if not api_key:
        logger.warning("Missing API Key")
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing API Key")
    if not api_keys:
        logger.error("HOSTPROBE_API_KEY is not set, refusing request")
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Could not validate credentials")
    if api_key not in api_keys:
        logger.warning("Invalid API Key")
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Could not validate credentials")
    return api_key
