from fastapi import APIRouter
from taxintake.api.public import intake

router = APIRouter()
router.include_router(intake.router, prefix="/intake", tags=["PublicIntake"])
