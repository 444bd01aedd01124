"""
Alert Engine - FastAPI Application

Main entry point for the expiration/maturity alert backend.

Architecture:
- Cron → /internal/expiration-sweep → ExpirationScanner
- ExpirationScanner → TimeWindowEvaluator → AlertLedger → RecipientResolver
  → NotificationEmitter → TriggerStore
- Users → /triggers (dismiss/action), /alerts (acknowledge)
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .database import init_db
from .logging_config import configure_logging
from .routers import triggers_router, alerts_router, scheduler_router
from .services.alerts import validate_sweep_interval


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, check the sweep cadence and create tables on startup."""
    configure_logging()
    validate_sweep_interval()
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Alert Engine",
    description="""
    Alert Engine - Lease Expiration & Debt Maturity Alerts

    Watches lease end dates and debt maturity dates and notifies the
    responsible agent exactly once per warning threshold.

    ## Thresholds
    90, 60, 30 and 7 days before the target date.

    ## Key Principles
    - The alert ledger's unique (entity, threshold) constraint is the dedup guarantee
    - Sweeps are stateless and may overlap; due-ness is derived from dates and the ledger
    - Every crossed threshold fires, even after a missed sweep
    - Triggers move forward only: pending → active → dismissed | actioned
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(triggers_router)
app.include_router(alerts_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Alert Engine",
        "version": __version__,
        "description": "Lease expiration and debt maturity alerts",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m alert_engine.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
