"""
Main FastAPI application entry point.
Creates the schema, configures logging and CORS, and mounts the API router.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import engine, Base
from app.api.endpoints import router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

# Create database tables
Base.metadata.create_all(bind=engine)

# Initialize FastAPI app
app = FastAPI(
    title="Court Decisions Concordance API",
    description="Ingest plain-text court decisions and search them by word, phrase and word group with line context",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api")


@app.get("/")
def root():
    """Root endpoint with API information."""
    return {
        "message": "Court Decisions Concordance API",
        "version": "1.0.0",
        "endpoints": {
            "/api/decisions/{id}/text": "Ingest (PUT) or read (GET) a decision text",
            "/api/decisions/{id}/words": "Word index with counts",
            "/api/decisions/{id}/search/word": "Word occurrences with context",
            "/api/decisions/{id}/search/phrase": "Phrase occurrences with context",
            "/api/decisions/{id}/stats": "Line, token and unique word counts",
            "/api/groups": "Word groups and their index",
            "/api/phrases": "Saved phrases"
        }
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
