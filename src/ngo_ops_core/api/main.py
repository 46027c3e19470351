"""NGO Operations Core FastAPI application.

Identity is handled upstream; the acting user arrives in the X-User-Id header.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import get_settings
from .routers import dashboard, documents, reminders, work_items

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("ngo-ops")

logger.info("Starting NGO Operations Core API")

# Create FastAPI app
app = FastAPI(
    title="NGO Operations Core API",
    description="Work item lifecycle, evidence review, reminders and operational dashboards",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(work_items.router, prefix="/api/v1/work-items")
app.include_router(documents.router, prefix="/api/v1/documents")
app.include_router(reminders.router, prefix="/api/v1/reminders")
app.include_router(dashboard.router, prefix="/api/v1/dashboard")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "NGO Operations Core API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
