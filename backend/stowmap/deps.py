from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from .caller import CallerContext, require_min_role
from .db import get_session
from .errors import Unauthorized
from .models import User, OrgRole
from .security import ACCESS, decode_token, token_user_id


async def get_db(session: AsyncSession = Depends(get_session)) -> AsyncSession:
    return session


def _bearer(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1]
    return None


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    token = _bearer(request) or request.cookies.get("access_token")
    if not token:
        raise Unauthorized("Not authenticated")
    user = await db.get(User, token_user_id(decode_token(token, ACCESS)))
    if not user or not user.is_active:
        raise Unauthorized("User inactive")
    return user


def require_role(minimum: OrgRole):
    """Dependency resolving the caller and checking their role against ``minimum``."""

    async def _checker(current_user: User = Depends(get_current_user)) -> CallerContext:
        caller = CallerContext(user_id=current_user.id, org_id=current_user.org_id, role=current_user.role)
        return require_min_role(caller, minimum)

    return _checker
