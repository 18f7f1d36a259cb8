"""Verification of access tokens minted by the identity service.

This backend never issues tokens. Registered claims are checked against the
configured issuer and audience; ``sub`` is the only other required claim.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
from jwt import InvalidTokenError

from estate.settings import settings

ALGORITHM = "HS256"
_REQUIRED = ["exp", "iat", "iss", "aud"]


@dataclass(frozen=True, slots=True)
class AccessClaims:
	subject: str
	roles: object = None
	nick: Optional[str] = None


def decode_access(token: str) -> AccessClaims:
	"""Raises jwt.InvalidTokenError subclasses when the token is unusable."""
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=[ALGORITHM],
		audience=settings.jwt_audience,
		issuer=settings.jwt_issuer,
		leeway=settings.jwt_leeway_seconds,
		options={"require": _REQUIRED},
	)
	subject = payload.get("sub")
	if not subject:
		raise InvalidTokenError("missing_claim:sub")
	nick = payload.get("nick")
	return AccessClaims(
		subject=str(subject),
		roles=payload.get("roles") or payload.get("role"),
		nick=str(nick) if nick is not None else None,
	)
