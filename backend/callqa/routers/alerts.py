from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from ..database import get_db
from ..repository import Repository
from ..schemas import Alert as AlertSchema

router = APIRouter()

@router.get("/", response_model=List[AlertSchema])
def list_alerts(
    company_id: int,
    agent_id: Optional[int] = None,
    unread_only: bool = False,
    limit: int = 50,
    db: Session = Depends(get_db)
):
    """List a company's alerts, newest first"""
    return Repository(db).list_alerts(company_id, agent_id=agent_id, unread_only=unread_only, limit=limit)

@router.patch("/{alert_id}/read", response_model=AlertSchema)
def mark_alert_read(alert_id: int, db: Session = Depends(get_db)):
    alert = Repository(db).mark_alert_read(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert
