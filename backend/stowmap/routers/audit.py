from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, ELEVATED_ROLE
from ..schemas import AuditEntry
from ..deps import get_db, require_role
from ..services import audit as audit_service


router = APIRouter()


@router.get("", response_model=list[AuditEntry])
async def list_audit(
    entity_type: str | None = Query(None),
    entity_id: int | None = Query(None),
    action: str | None = Query(None),
    user_id: int | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    limit: int = Query(audit_service.MAX_AUDIT_PAGE, ge=1),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(ELEVATED_ROLE)),
):
    return await audit_service.list_entries(
        db,
        caller,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )
