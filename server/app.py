"""
Podcast-events validator FastAPI server.

Every path and method is routed to the inbox validator, which decides the
status itself (405 for anything but POST, preflight OPTIONS included). The
CORS allow-origin header rides on every validator response:

  POST /            — validate a signed batch of listen events
  POST /{any path}  — same endpoint, path is ignored
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, Response

from core.config import Config
from core.envelope import PublicKeyResolver
from core.resolver import make_resolver
from core.validator import InboundRequest, handle_request

from .models import INBOX_RESPONSES

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Podcast Events Validator",
    description="Validates signed podcast listen-event batches against a published JWK Set",
    version="0.1.0",
)

# ---------------------------------------------------------------------------
# Global state (configuration only; requests share nothing else)
# ---------------------------------------------------------------------------
_config: Config | None = None
_resolver: PublicKeyResolver | None = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def get_resolver() -> PublicKeyResolver:
    global _resolver
    if _resolver is None:
        _resolver = make_resolver(config=get_config())
    return _resolver


@app.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    responses=INBOX_RESPONSES,
)
async def inbox(request: Request, path: str) -> Response:
    """Validate a signed batch of listen events."""
    body = b""
    body_error = None
    try:
        body = await request.body()
    except Exception as e:
        body_error = str(e) or "Failed to read request body"
        logger.warning(f"Failed to read request body: {body_error}")

    inbound = InboundRequest(
        method=request.method,
        headers=dict(request.headers),
        body=body,
        body_error=body_error,
    )
    result = await handle_request(inbound, get_resolver())
    return Response(content=result.body, status_code=result.status, headers=result.headers)
