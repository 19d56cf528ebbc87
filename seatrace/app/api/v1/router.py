"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from seatrace.app.api.v1.endpoints import goods, chain, admin_ops

router = APIRouter()

# Lifecycle and public trace
router.include_router(goods.router)

# On-chain views
router.include_router(chain.router)

# Ops endpoints
router.include_router(admin_ops.router)
