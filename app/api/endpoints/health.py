import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_search_service
from app.db import get_session
from app.marketplaces.adapter_factory import get_supported_sources
from app.services.product_search_service import ProductSearchService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/system")
def get_system_health(
    session: Session = Depends(get_session),
    search_service: ProductSearchService = Depends(get_search_service),
):
    """Database reachability plus the circuit state of every marketplace source."""
    try:
        database_ok = session.scalar(select(1)) == 1
    except SQLAlchemyError as e:
        logger.error(f"[Health] Database check failed: {e}")
        database_ok = False

    sources = get_supported_sources()
    circuits = {source: search_service.breaker.get_state(source).value for source in sources}

    return {
        "status": "healthy" if database_ok else "unhealthy",
        "database": "ok" if database_ok else "error",
        "sources": sources,
        "circuits": circuits,
    }
