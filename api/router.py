from fastapi import APIRouter

from api.v1.away import router as away_router
from api.v1.classes import router as classes_router
from api.v1.enrolments import router as enrolments_router
from api.v1.holidays import router as holidays_router
from api.v1.payments import router as payments_router

router = APIRouter()

# Include v1 routers
router.include_router(payments_router, prefix="/v1")
router.include_router(away_router, prefix="/v1")
router.include_router(enrolments_router, prefix="/v1")

# Admin schedule management
router.include_router(holidays_router, prefix="/v1")
router.include_router(classes_router, prefix="/v1")
