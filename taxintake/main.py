import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from taxintake.core.config import settings
from taxintake.core.http_hardening import EXPOSED_HEADERS, install_http_hardening
from taxintake.api.public.router import router as public_router
from taxintake.api.firm.router import router as firm_router

logging.basicConfig(
    level=getattr(logging, str(settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=EXPOSED_HEADERS,
)
install_http_hardening(app)

app.include_router(public_router, prefix="/api/public")
app.include_router(firm_router, prefix="/api/firm")

@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "status": "ok"})

@app.get("/health")
def health():
    return {"status": "ok"}
