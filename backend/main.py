"""FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import simplefin_items
from logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


app = FastAPI(
    title="SimpleFIN Relink",
    description="Link SimpleFIN accounts to existing manual accounts and merge their history",
    version="0.1.0",
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(simplefin_items.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
