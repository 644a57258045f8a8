"""
JWK Set resolver. Fetches the publisher's key directory over HTTPS and imports
the verifying key selected by ``kid``.

The directory is fetched on every call; there is no cache and no retry.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from cryptography.hazmat.primitives.asymmetric import rsa

from .checks import try_parse_url
from .config import Config
from .envelope import PublicKeyResolver
from .errors import ResolverError
from .keys import import_public_jwk

logger = logging.getLogger(__name__)


async def _fetch_json(client: httpx.AsyncClient, url: str):
    response = await client.get(url, headers={"accept": "application/json"})
    logger.info(f"Fetched JWK Set {url} -> {response.status_code}")
    try:
        return response.json()
    except ValueError as e:
        raise ResolverError(f"Bad JWK Set at {url}, expected json: {e}") from e


async def resolve_public_key(
    jku: str,
    kid: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    config: Optional[Config] = None,
) -> rsa.RSAPublicKey:
    """Return the RS256 verifying key with id *kid* from the JWK Set at *jku*."""
    url = try_parse_url(jku)
    if url is None:
        raise ResolverError(f"Bad jku {jku}, expected url")
    if url.scheme.lower() != "https":
        raise ResolverError(f"Bad jku {jku}, expected https url")

    if client is not None:
        document = await _fetch_json(client, jku)
    else:
        timeout = (config or Config()).fetch_timeout
        async with httpx.AsyncClient(timeout=timeout) as own_client:
            document = await _fetch_json(own_client, jku)

    keys = document.get("keys") if isinstance(document, dict) else None
    if not isinstance(keys, list):
        raise ResolverError(f"No 'keys' key found at {jku}")

    entry = next((k for k in keys if isinstance(k, dict) and k.get("kid") == kid), None)
    if entry is None:
        raise ResolverError(f"Key ID {kid} not found at {jku}")

    return import_public_jwk(entry)


def make_resolver(
    client: Optional[httpx.AsyncClient] = None,
    config: Optional[Config] = None,
) -> PublicKeyResolver:
    """Bind a client/config into a ``(jku, kid)`` resolver for ``decode_envelope``."""

    async def resolve(jku: str, kid: str) -> rsa.RSAPublicKey:
        return await resolve_public_key(jku, kid, client=client, config=config)

    return resolve
