"""
FastAPI dependencies — caller resolution, role guards and the services
built by the app factory.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carelog.core.security import decode_access_token
from carelog.models.user import Role, User
from carelog.services.analytics import AnalyticsAggregator
from carelog.services.ledger import ShiftLedger, WorkerContext

# Tokens are issued upstream; tokenUrl only feeds the OpenAPI docs.
# auto_error=False so we can fall back to the cookie when the header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


# ── Services (constructed once per app in create_app) ───────────────
def get_ledger(request: Request) -> ShiftLedger:
    return request.app.state.ledger


def get_aggregator(request: Request) -> AnalyticsAggregator:
    return request.app.state.aggregator


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode JWT from Header OR Cookie, look up user."""

    # Priority: Header > Cookie
    final_token = token
    if not final_token and access_token:
        # Cookie may be "Bearer <token>" or just "<token>"
        if access_token.startswith("Bearer "):
            final_token = access_token.split(" ", 1)[1]
        else:
            final_token = access_token

    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not final_token:
        raise credentials_exc

    payload = decode_access_token(final_token)
    if payload is None:
        raise credentials_exc

    user_id: str | None = payload.get("sub")
    if user_id is None or not user_id.isdigit():
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exc
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def get_worker_context(
    current_user: User = Depends(get_current_active_user),
) -> WorkerContext:
    return WorkerContext(
        worker_id=current_user.id,
        role=current_user.role,
        location_id=current_user.location_id,
    )


async def require_manager(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Only managers and admins may read analytics."""
    if current_user.role not in (Role.MANAGER.value, Role.ADMIN.value):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manager privileges required",
        )
    return current_user
