from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, ok
from app.db import get_session
from app.models import User
from app.services.usage_service import get_usage_summary

router = APIRouter()


@router.get("")
def usage_summary(session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    """Today's (UTC) usage against the caller's tier limits."""
    return ok({"tier": user.subscription_tier, "usage": get_usage_summary(session, user.id, user.subscription_tier)})
