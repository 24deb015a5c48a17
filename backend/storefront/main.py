from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.core.config import APP_NAME, APP_VERSION, CORS_ORIGINS, LOG_LEVEL
from storefront.db.mongo import ensure_indexes
from storefront.routes import (
    auth, products, categories, cart, checkout, orders, reviews, wishlist, addresses, user,
    admin, admin_catalog, admin_promotions
)
from storefront.services.utils import log_error

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes()
    logger.info("%s %s started", APP_NAME, APP_VERSION)
    yield

app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION, lifespan=lifespan)

api_router = APIRouter(prefix="/api")

@api_router.get("/")
async def root():
    return {"message": f"{APP_NAME} API", "version": APP_VERSION}

@api_router.get("/health")
async def health():
    return {"status": "healthy"}

for module in (auth, products, categories, cart, checkout, orders, reviews, wishlist, addresses, user,
               admin, admin_catalog, admin_promotions):
    api_router.include_router(module.router)

app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    try:
        await log_error(
            error_type=type(exc).__name__,
            error_message=str(exc),
            endpoint=request.url.path,
            stack_trace=traceback.format_exc()
        )
    except Exception:
        logger.exception("Could not persist error log")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
