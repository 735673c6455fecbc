"""Shared bearer-token check for master and slave endpoints."""
import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)


async def require_api_key(request: Request, authorization: Optional[str] = Header(None)):
    """Reject the request with 401 unless it carries the configured bearer token."""
    api_key = request.app.state.settings.api_key
    if not api_key:
        logger.warning(f"Rejected {request.url.path}: API_KEY is not configured")
        raise HTTPException(status_code=401, detail="API key not configured on this node")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), api_key):
        client = request.client.host if request.client else "unknown"
        logger.warning(f"Rejected {request.url.path} from {client}: invalid API key")
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
