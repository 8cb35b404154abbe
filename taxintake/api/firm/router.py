from fastapi import APIRouter
from taxintake.api.firm import clients, filings, uploads

router = APIRouter()
router.include_router(clients.router, prefix="/clients", tags=["FirmClients"])
router.include_router(filings.router, prefix="/filings", tags=["FirmFilings"])
router.include_router(uploads.router, prefix="/uploads", tags=["FirmFiles"])
