from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from mmstock.apps.accounts.models import User
from mmstock.database import get_read_db
from mmstock.security import require_admin

from . import schemas, services


router = APIRouter(
    prefix="/audit",
    tags=["audit"],
)


@router.get("/", response_model=List[schemas.AuditEventRead])
def list_audit_events(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = Query(services.DEFAULT_LIST_LIMIT, ge=1, le=5000),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_audit_events(
        db,
        company_id=current_user.company_id,
        date_from=date_from,
        date_to=date_to,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        limit=limit,
    )


@router.get("/actions", response_model=List[str])
def list_audit_actions(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_actions(db, company_id=current_user.company_id)


@router.get("/actors", response_model=List[schemas.AuditActor])
def list_audit_actors(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_actors(db, company_id=current_user.company_id)
