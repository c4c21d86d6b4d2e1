# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""App Store Connect API tokens."""

import logging
import os
import time

import jwt

from .errors import AuthError

LOG = logging.getLogger("store_kpi.auth")

TOKEN_TTL = 20 * 60


def read_private_key(value: str) -> str:
    """Return PEM text from either the key itself or a path to a .p8 file."""
    value = (value or "").strip()
    if not value:
        raise AuthError("App Store Connect private key is empty")
    if "-----BEGIN" in value:
        # Keys pasted into CI secrets often carry literal \n sequences
        return value.replace("\\n", "\n")
    try:
        with open(os.path.expanduser(value), "r", encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        raise AuthError(f"Cannot read private key file {value}: {e}") from e


def make_token(issuer_id: str, key_id: str, private_key: str, ttl: int = TOKEN_TTL) -> str:
    """Create a short-lived ES256 JWT for the App Store Connect API.

    Args:
        issuer_id: Issuer ID from App Store Connect integrations
        key_id: ID of the API key
        private_key: PEM text or path to the .p8 key
        ttl: Token lifetime in seconds (Apple allows at most 20 minutes)

    Returns:
        str: Signed JWT token

    Raises:
        AuthError: If the key cannot be read or signing fails
    """
    pem = read_private_key(private_key)
    now = int(time.time())
    try:
        return jwt.encode(
            {
                "iss": issuer_id,
                "iat": now,
                "exp": now + ttl,
                "aud": "appstoreconnect-v1",
            },
            pem,
            algorithm="ES256",
            headers={"kid": key_id, "typ": "JWT"},
        )
    except (ValueError, TypeError, jwt.PyJWTError) as e:
        LOG.error("Failed to generate JWT token: %s", e)
        raise AuthError(f"Cannot sign App Store Connect token: {e}") from e
