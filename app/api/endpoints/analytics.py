from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, ok
from app.db import get_session
from app.models import User
from app.services import analytics_service

router = APIRouter()


@router.get("/dashboard")
def dashboard(
    period: str = Query(default=analytics_service.DEFAULT_PERIOD),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return ok(analytics_service.get_dashboard(session, user.id, period))


@router.get("/sales")
def sales(
    period: str = Query(default=analytics_service.DEFAULT_PERIOD),
    group_by: Literal["day"] = Query(default="day", alias="groupBy"),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return ok({"chartData": analytics_service.get_sales_chart(session, user.id, period)})


@router.get("/products")
def top_products(
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return ok({"products": analytics_service.get_top_products(session, user.id, limit=limit)})


@router.get("/roi")
def roi(session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    return ok(analytics_service.get_roi(session, user.id))


@router.get("/export")
def export(
    format: Literal["csv", "json"] = Query(default="csv"),
    type: str = Query(default="orders"),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    rows = analytics_service.export_rows(session, user.id, type)
    if format == "json":
        return ok(jsonable_encoder(rows))

    if not rows:
        return PlainTextResponse("No data to export")
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    return Response(
        content=analytics_service.to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{type}-{stamp}.csv"'},
    )
