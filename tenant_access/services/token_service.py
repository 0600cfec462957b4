"""JWT access token creation and validation (ES256).

Tokens are issued by the identity provider in production; this module
holds the verification side plus an issuer used by tests and local dev.
The claims the service relies on are ``sub`` (user id) and ``email``
(matched against invitation emails on acceptance).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

# Dev/test: ephemeral EC key pair generated on import.
_private_key = ec.generate_private_key(ec.SECP256R1())
_public_key = _private_key.public_key()

ALGORITHM = "ES256"
ISSUER = "tenant-access"
AUDIENCE = "tenant-access"
ACCESS_TOKEN_TTL_MIN = 15


def create_access_token(*, sub: str, email: str) -> str:
    """Build and sign an access token: sub, email, iss, aud, exp, iat, jti."""
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "email": email,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 (no alg:none, no alg switching).
    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "email", "exp", "iat", "jti"]},
    )
