from fastapi import APIRouter

from .endpoints import (
    analytics,
    health,
    loyalty,
    observability,
    raffle,
    rewards,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(loyalty.router)
router.include_router(rewards.router)
router.include_router(raffle.router)
router.include_router(analytics.router)
router.include_router(observability.router)
