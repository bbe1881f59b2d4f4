# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

"""
Principal Resolver
Turns verified identity claims into the Principal a request is authorized as.
Token verification itself is a black box; the default verifier checks an HS256 JWT.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import jwt
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.authorization.base import AccountStatus, Role
from clinic_authz.config import JWT_ALGORITHM, JWT_SECRET
from clinic_authz.models.security import User
from clinic_authz.services.exceptions import StoreUnavailable, Unauthenticated, UserNotFound
from clinic_authz.utils.logger import logger

TokenVerifier = Callable[[str], Dict[str, Any]]


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str
    status: str = AccountStatus.ACTIVE.value

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def verify_jwt(token: str, secret: str = JWT_SECRET, algorithm: str = JWT_ALGORITHM) -> Dict[str, Any]:
    """Decode and verify an access token. Raises Unauthenticated on any failure."""
    if token.startswith("Bearer "):
        token = token[len("Bearer ") :]
    if not token:
        raise Unauthenticated("No token provided!")
    try:
        claims: Dict[str, Any] = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as e:
        raise Unauthenticated("Unauthorized!") from e
    if "id" not in claims and "sub" not in claims:
        raise Unauthenticated("Unauthorized!")
    return claims


def user_id_from_claims(claims: Dict[str, Any]) -> int:
    raw = claims.get("id", claims.get("sub"))
    try:
        return int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise Unauthenticated("Unauthorized!") from e


class PrincipalResolver:
    """
    Loads role and status from the users table.
    The token's role claim is not trusted; the stored role is authoritative.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, claims: Dict[str, Any]) -> Principal:
        user_id = user_id_from_claims(claims)
        user = await self._load_user(user_id)
        if user is None:
            raise UserNotFound(user_id)

        if claims.get("role") and claims["role"] != user.role:
            logger.warning(f"Token role '{claims['role']}' differs from stored role '{user.role}' for user {user_id}")

        return Principal(user_id=user.id, role=user.role, status=user.status)

    async def _load_user(self, user_id: int) -> Optional[User]:
        try:
            result = await self.db.execute(select(User).where(User.id == user_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load user {user_id}: {e}")
            raise StoreUnavailable("User lookup failed") from e
