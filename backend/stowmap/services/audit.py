from datetime import datetime
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, ELEVATED_ROLE, require_min_role
from ..db import utcnow
from ..models import AuditLog

MAX_AUDIT_PAGE = 200


async def log_action(
    db: AsyncSession,
    org_id: Optional[int],
    user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    payload: Optional[dict] = None,
):
    # Joins the caller's transaction; committed (or rolled back) with the change it records.
    entry = AuditLog(
        org_id=org_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        payload_json=payload,
        created_at=utcnow(),
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_entries(
    db: AsyncSession,
    caller: CallerContext,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = MAX_AUDIT_PAGE,
) -> list[AuditLog]:
    """Newest first, scoped to the caller's organization."""
    require_min_role(caller, ELEVATED_ROLE)
    stmt = select(AuditLog).where(AuditLog.org_id == caller.org_id)
    filters = (
        (entity_type, AuditLog.entity_type),
        (entity_id, AuditLog.entity_id),
        (action, AuditLog.action),
        (user_id, AuditLog.user_id),
    )
    for value, column in filters:
        if value is not None:
            stmt = stmt.where(column == value)
    if date_from:
        stmt = stmt.where(AuditLog.created_at >= date_from)
    if date_to:
        stmt = stmt.where(AuditLog.created_at <= date_to)
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(min(limit, MAX_AUDIT_PAGE))
    res = await db.execute(stmt)
    return list(res.scalars().all())
