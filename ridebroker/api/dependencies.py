"""
FastAPI dependency injection helpers.

Caller identity
---------------
Credentials are checked upstream.  The gateway forwards the authenticated
account as ``X-Caller-Id`` / ``X-Caller-Role``; here we only resolve that
pair against the Account Directory, refuse inactive accounts and enforce
the per-route role list.
"""

from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, Path, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridebroker.domain.entities import Account
from ridebroker.domain.enums import Role, parse_enum
from ridebroker.domain.errors import (
    AuthenticationError,
    AuthorizationError,
    InternalError,
)
from ridebroker.infrastructure.repositories import AccountDirectory
from ridebroker.services.lifecycle import LifecycleEngine

logger = logging.getLogger(__name__)

# Primary keys are 32-bit INTEGER columns; larger ids match no record.
MAX_RECORD_ID = 2**31 - 1

RecordId = Annotated[int, Path(ge=1, le=MAX_RECORD_ID)]


def get_engine(request: Request) -> LifecycleEngine:
    """Retrieve the LifecycleEngine from app state."""
    return request.app.state.engine


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


async def get_caller(
    x_caller_id: Optional[str] = Header(None),
    x_caller_role: Optional[str] = Header(None),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Account:
    if not x_caller_id or not x_caller_id.isdecimal():
        raise AuthenticationError()
    if not 1 <= int(x_caller_id) <= MAX_RECORD_ID:
        raise AuthenticationError("Account not found.")
    role = parse_enum(Role, x_caller_role)
    if role is None:
        raise AuthenticationError()

    try:
        async with sessions() as session:
            account = await AccountDirectory(session).find_account_by_id(
                int(x_caller_id), role
            )
    except SQLAlchemyError:
        logger.exception("Store failure while resolving caller %s", x_caller_id)
        raise InternalError("Failed to resolve caller.")

    if account is None:
        raise AuthenticationError("Account not found.")
    if not account.is_active():
        raise AuthorizationError("Account not active.")
    return account


def require_roles(*roles: Role):
    """Dependency factory: the caller must hold one of *roles*."""

    async def checker(caller: Account = Depends(get_caller)) -> Account:
        if caller.role not in roles:
            raise AuthorizationError()
        return caller

    return checker


rider_only = require_roles(Role.RIDER)
driver_only = require_roles(Role.DRIVER)
admin_only = require_roles(Role.ADMIN)
ride_party = require_roles(Role.RIDER, Role.DRIVER)
