"""Authentication helpers for FastAPI endpoints.

Identity is resolved from a verified bearer JWT. In development the
`X-User-Id` / `X-User-Roles` headers are accepted so local tools and tests
can act as any member.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from estate.infra import jwt as jwt_helper
from estate.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	roles: Tuple[str, ...] = ()
	nick: Optional[str] = None

	def has_role(self, role: str) -> bool:
		return role in self.roles


_bearer_scheme = HTTPBearer(auto_error=False)


def _split_roles(value: object) -> Tuple[str, ...]:
	if isinstance(value, (list, tuple)):
		return tuple(str(r).strip() for r in value if str(r).strip())
	if isinstance(value, str):
		return tuple(part.strip() for part in value.split(",") if part.strip())
	return ()


def _member_id(value: object) -> str:
	"""Member ids are UUIDs; anything else is an unusable identity."""
	try:
		return str(UUID(str(value).strip()))
	except ValueError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_subject")


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		claims = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return AuthenticatedUser(id=_member_id(claims.subject), roles=_split_roles(claims.roles), nick=claims.nick)


async def get_optional_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser | None:
	"""Resolve the caller if one is presented; anonymous reads return None."""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)
	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=_member_id(x_user_id), roles=_split_roles(x_user_roles))
	return None


async def get_current_user(
	user: AuthenticatedUser | None = Depends(get_optional_user),
) -> AuthenticatedUser:
	if user is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return user


def require_roles(*required: Iterable[str]):
	"""Return a dependency that enforces the presence of any of the given roles."""
	required_set = {str(r).strip() for r in required if str(r).strip()}

	async def _dep(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
		if not required_set:
			return user
		if any(user.has_role(r) for r in required_set):
			return user
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")

	return _dep
