"""
API v1 Router

Invoice endpoints are org-scoped under /orgs/{org_id}.
"""

from fastapi import APIRouter

from . import invoices, organizations

router = APIRouter()

router.include_router(organizations.router)
router.include_router(invoices.router, prefix="/orgs/{org_id}/invoices", tags=["Invoices"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/orgs/{org_id}/invoices",
            "/orgs/{org_id}/invoices/upload",
            "/orgs/{org_id}/invoices/analyze",
        ],
    }
