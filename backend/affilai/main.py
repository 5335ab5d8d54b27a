"""
AffilAI — FastAPI Backend
Product intelligence and affiliate link lifecycle: program discovery, tracking
link synthesis, ad format recommendation and ad copy generation.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from affilai.config import get_settings
from affilai.database import init_db, check_db_connection
from affilai.auth import require_auth
from affilai.dependencies import get_oracle
from affilai.routers import products, credentials, affiliate, ads

settings = get_settings()

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting AffilAI...")
    try:
        await init_db()
        logger.info("Database initialized — all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    logger.info(f"Oracle: {get_oracle()!r}")
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="AffilAI",
    description="Affiliate program discovery, link lifecycle and ad copy generation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Register Routers (all require auth) ──────────────────────────────
_auth = [Depends(require_auth)]
app.include_router(products.router, prefix="/api/products", tags=["Products"], dependencies=_auth)
app.include_router(credentials.router, prefix="/api/credentials", tags=["Credentials"], dependencies=_auth)
app.include_router(affiliate.router, prefix="/api/affiliate", tags=["Affiliate Links"], dependencies=_auth)
app.include_router(ads.router, prefix="/api/ads", tags=["Ad Generation"], dependencies=_auth)


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "AffilAI",
        "database": "connected" if db_ok else "disconnected",
    }
