"""
JSON web token signing and verification with rotated key pairs.

JwtSigner signs with the latest key pair from a KeyPairCache and records the
exact key version in the token's ``kid`` header as ``name/version``.
JwtVerifier reads that header back and asks a PublicKeyCache for the
matching version, so tokens signed before a rotation keep verifying until
the old version's grace period runs out.

Example usage:
    ```python
    sign = JwtSigner(KeyPairCache(store.fetch_key_pair)).sign
    verify = JwtVerifier(PublicKeyCache(store.fetch_public_key)).verify

    token = await sign({"sub": "alice"}, "session", algorithm="ES256", expires_in=300)
    claims = await verify(token, "session")
    ```
"""

import time
from typing import Any, Dict, Iterable, Mapping, Optional

import jwt

from .cache import KeyPairCache, PublicKeyCache
from .logging import get_logger
from .models import parse_key_id
from .types import KEY_ID_SEPARATOR, KeyMismatchError, SigningError, VerificationError

logger = get_logger(__name__)

# Algorithms accepted by default when verifying; all use asymmetric keys
ASYMMETRIC_ALGORITHMS = (
    "RS256", "RS384", "RS512",
    "PS256", "PS384", "PS512",
    "ES256", "ES384", "ES512",
    "EdDSA",
)

DEFAULT_ALGORITHM = "RS256"


def read_key_id(token: str) -> str:
    """
    Read the unverified ``kid`` header of a token.

    Raises:
        VerificationError: If the header cannot be decoded or has no kid
    """
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as e:
        raise VerificationError(f"Malformed token header: {e}") from e

    key_id = header.get("kid")
    if not isinstance(key_id, str):
        raise VerificationError("Token has no key identifier")
    return key_id


class JwtSigner:
    """Signs tokens with key pairs resolved through a KeyPairCache."""

    def __init__(self, key_pair_cache: KeyPairCache) -> None:
        self.key_pair_cache = key_pair_cache

    async def sign(
        self,
        payload: Mapping[str, Any],
        key_name: str,
        *,
        algorithm: str = DEFAULT_ALGORITHM,
        headers: Optional[Mapping[str, Any]] = None,
        expires_in: Optional[int] = None,
        no_timestamp: bool = False,
    ) -> str:
        """
        Sign a token with the latest version of the named key.

        The ``kid`` header is always set to the key's ``name/version``,
        replacing any caller-supplied value. The key pair's own expiry is
        not mapped onto the token; use ``expires_in`` (or ``payload["exp"]``).

        Args:
            payload: Token claims
            key_name: Name of the key to request from the cache
            algorithm: JWS algorithm matching the key type
            headers: Extra token headers
            expires_in: Seconds until the token's exp claim
            no_timestamp: Do not add an iat claim

        Returns:
            The encoded token

        Raises:
            KeyRotorError: Whatever the cache raised resolving the key
            SigningError: If the key name contains "/", or the token primitive
                rejects the key or payload
        """
        key_pair = await self.key_pair_cache.get_key_pair(key_name)
        if KEY_ID_SEPARATOR in key_pair.name:
            raise SigningError(
                f"Key name {key_pair.name!r} contains {KEY_ID_SEPARATOR!r} and cannot be "
                "recovered from the token's key identifier"
            )

        claims = dict(payload)
        issued_at = claims.get("iat")
        if not no_timestamp and issued_at is None:
            issued_at = int(time.time())
            claims["iat"] = issued_at
        if expires_in is not None:
            base = issued_at if isinstance(issued_at, (int, float)) else int(time.time())
            claims["exp"] = base + expires_in

        token_headers = dict(headers or {})
        token_headers["kid"] = key_pair.key_id

        try:
            return jwt.encode(
                claims,
                key_pair.private_key,
                algorithm=algorithm,
                headers=token_headers,
            )
        except (jwt.PyJWTError, NotImplementedError, ValueError, TypeError) as e:
            logger.warning("Token signing failed", key_id=key_pair.key_id, error=str(e))
            raise SigningError(f"Failed to sign token with {key_pair.key_id}: {e}") from e


class JwtVerifier:
    """Verifies tokens with public keys resolved through a PublicKeyCache."""

    def __init__(self, public_key_cache: PublicKeyCache) -> None:
        self.public_key_cache = public_key_cache

    async def verify(
        self,
        token: str,
        key_name: str,
        *,
        algorithms: Optional[Iterable[str]] = None,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        leeway: float = 0,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Verify a token signed by JwtSigner and return its claims.

        The key version is taken from the token's kid. A token claiming a
        different key name than ``key_name`` is rejected before any key is
        fetched.

        Raises:
            KeyMismatchError: If the token names a different key
            KeyRotorError: Whatever the cache raised resolving the key
            VerificationError: If the header is malformed or the token does
                not verify (bad signature, expired, wrong audience...)
        """
        declared_name, version = parse_key_id(read_key_id(token))
        if declared_name != key_name:
            logger.warning("Token key mismatch", expected=key_name, declared=declared_name)
            raise KeyMismatchError(key_name, declared_name)

        public_key = await self.public_key_cache.get_public_key(key_name, version)

        try:
            return jwt.decode(
                token,
                public_key,
                algorithms=list(algorithms or ASYMMETRIC_ALGORITHMS),
                audience=audience,
                issuer=issuer,
                leeway=leeway,
                options=options,
            )
        except jwt.PyJWTError as e:
            logger.warning(
                "Token verification failed",
                key_name=key_name,
                key_version=version,
                error=str(e),
            )
            raise VerificationError(f"Token verification failed: {e}") from e
