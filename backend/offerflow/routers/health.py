from __future__ import annotations

from fastapi import APIRouter

from .. import __version__
from ..settings import settings

router = APIRouter()


@router.get("/", tags=["health"])
def health():
    return {
        "message": "Offerflow investment workflow API",
        "version": __version__,
        "status": "running",
        "environment": settings.normalized_environment,
        "dynamodb": "configured" if settings.ddb_table_name else "missing",
        "endpoints": [
            "POST /api/offers",
            "GET /api/offers/{offerId}",
            "POST /api/co-investment/opportunities",
            "GET /api/co-investment/opportunities/active",
            "POST /api/co-investment/opportunities/{opportunityId}/offers",
            "GET /api/advisors/{advisorId}/queue",
        ],
    }
