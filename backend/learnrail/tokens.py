"""Session token issuance and verification.

Tokens are compact HS256 JWTs: header, payload and signature segments
joined with dots. The payload carries the caller's claims plus `iat`
and `exp`. The codec itself does not care about the token kind; refresh
tokens are told apart by a `type: "refresh"` claim that callers check.
"""

import time
from typing import Callable, Optional

import jwt

REFRESH = "refresh"


class InvalidToken(Exception):
    """Raised for malformed, tampered or expired tokens."""


class TokenCodec:
    def __init__(self, secret: str, algorithm: str = "HS256", clock: Callable[[], float] = time.time):
        self.secret = secret
        self.algorithm = algorithm
        self.clock = clock

    def issue(self, claims: dict, ttl: int) -> str:
        """Sign `claims` into a token valid for `ttl` seconds."""
        issued_at = int(self.clock())
        payload = dict(claims)
        payload["iat"] = issued_at
        payload["exp"] = issued_at + int(ttl)
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> dict:
        """Return the claims of a valid token or raise `InvalidToken`.

        Signature comparison is constant-time (PyJWT uses
        `hmac.compare_digest`); expiry is checked against `clock`.
        """
        if not token or token.count(".") != 2:
            raise InvalidToken("malformed token")
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(str(exc)) from exc
        exp = payload.get("exp")
        if not isinstance(exp, int) or exp < self.clock():
            raise InvalidToken("token expired")
        return payload

    def issue_access(self, user_id: int, role: str, ttl: int) -> str:
        return self.issue({"user_id": user_id, "role": role}, ttl)

    def issue_refresh(self, user_id: int, ttl: int) -> str:
        return self.issue({"user_id": user_id, "type": REFRESH}, ttl)


def is_refresh(claims: Optional[dict]) -> bool:
    return bool(claims) and claims.get("type") == REFRESH
