"""
Funding goal routes
"""
from typing import Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.funding import DeleteGoalRequest
from app.services.payout_service import delete_funding_goal

router = APIRouter()


@router.post("/delete")
def delete_goal(payload: DeleteGoalRequest, db: Session = Depends(get_db)) -> Dict[str, bool]:
    return delete_funding_goal(db, payload.goal_id)
