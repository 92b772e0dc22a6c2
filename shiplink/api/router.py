from fastapi import APIRouter

from shiplink.api.v1 import audit, authority_rules, documents, health, jobs, reviews, shipments

api_router = APIRouter()

api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(documents.router, prefix="/v1/documents", tags=["documents"])
api_router.include_router(shipments.router, prefix="/v1/shipments", tags=["shipments"])
api_router.include_router(reviews.router, prefix="/v1/reviews", tags=["reviews"])
api_router.include_router(authority_rules.router, prefix="/v1/authority-rules", tags=["authority"])
api_router.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
api_router.include_router(audit.router, prefix="/v1/audit", tags=["audit"])
