"""
bookapi/api/jwks.py: JWKS (JSON Web Key Set) endpoint.

Publishes the RSA public key used to verify session tokens, so that the
request-authentication layer of other services (the book catalog) can
check tokens without sharing a secret.

RFC 7517. URL: GET /api/v1/.well-known/jwks.json
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["jwks"])


def _int_to_base64url(n: int) -> str:
    """Encode integer as Base64url (RFC 7518 §6.3)."""
    byte_length = (n.bit_length() + 7) // 8
    return base64.urlsafe_b64encode(n.to_bytes(byte_length, byteorder="big")).rstrip(b"=").decode("ascii")


def build_jwks(public_key_path: str) -> dict:
    """
    Builds the key set from a PEM public key.

    Returns ``{"keys": []}`` when no key is configured, the file is missing
    or the key is not RSA.
    """
    if not public_key_path:
        return {"keys": []}

    pub_path = Path(public_key_path)
    if not pub_path.is_file():
        logger.warning("JWKS: public key file not found: %s", pub_path)
        return {"keys": []}

    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
    from cryptography.hazmat.primitives.serialization import load_pem_public_key

    pub_key = load_pem_public_key(pub_path.read_bytes())
    if not isinstance(pub_key, RSAPublicKey):
        logger.warning("JWKS: unsupported key type (expected RSA)")
        return {"keys": []}

    numbers = pub_key.public_numbers()
    jwk = {
        "kty": "RSA",
        "use": "sig",
        "alg": "RS256",
        "kid": "bookapi-1",
        "n": _int_to_base64url(numbers.n),
        "e": _int_to_base64url(numbers.e),
    }
    logger.info("JWKS: RSA public key loaded (kid=%s)", jwk["kid"])
    return {"keys": [jwk]}


@router.get(
    "/.well-known/jwks.json",
    summary="JWKS: public keys for session token verification",
    response_class=JSONResponse,
)
async def get_jwks(request: Request):
    """Empty key set when tokens are signed with a shared secret (HS256)."""
    jwks = request.app.state.jwks
    if not jwks["keys"]:
        logger.debug("JWKS requested but no asymmetric keys configured")
    return JSONResponse(
        content=jwks,
        headers={"Cache-Control": "public, max-age=3600"},
    )
