"""
Emboditrust Product Verification API Service

Consumers verify pharmaceutical products by scratch code or QR label over
the web, USSD or SMS. Manufacturers generate code batches through the
admin API.

Routers:
- /api/verify, /api/qr, /api/reports  - Public verification (verification.verify_api)
- /api/ussd                           - USSD gateway webhook (channels.ussd_api)
- /api/sms/inbound                    - Twilio SMS webhook (channels.sms_api)
- /api/admin/*                        - Batch generation and analytics (admin.admin_api)
- GET /                               - Root health check
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from admin.admin_api import router as admin_router
from channels.sms_api import router as sms_router
from channels.ussd_api import router as ussd_router
from database.connection import init_database
from service.config import get_settings
from service.deps import register_configured_brands
from verification.errors import InvalidBrandPrefix, StorageUnavailable
from verification.verify_api import router as verification_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()
    yield


app = FastAPI(
    title="Emboditrust Product Verification API",
    description="First-use verification of scratch codes for pharmaceutical products",
    version=VERSION,
    lifespan=lifespan,
)

register_configured_brands(get_settings())

app.include_router(verification_router)
app.include_router(ussd_router)
app.include_router(sms_router)
app.include_router(admin_router)

# Allow the verification web app
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.error(f"Storage unavailable on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Verification is temporarily unavailable. Please try again."},
    )


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable. Please try again."},
    )


@app.exception_handler(InvalidBrandPrefix)
async def invalid_brand_prefix_handler(request: Request, exc: InvalidBrandPrefix):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/", response_model=dict)
def root():
    """Root health check endpoint."""
    return {
        "service": "Emboditrust Product Verification API",
        "status": "operational",
        "version": VERSION,
        "endpoints": [
            "GET /api/verify/health",
            "POST /api/verify",
            "GET /api/qr/{qr_code_id}/info",
            "POST /api/verify/qr/{qr_code_id}",
            "POST /api/reports/fake-product",
            "POST /api/ussd",
            "POST /api/sms/inbound",
            "POST /api/admin/batches",
        ],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
