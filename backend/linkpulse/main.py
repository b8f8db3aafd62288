from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import engine, Base
from .api import links, analytics
from .dependencies import shutdown_services
from .utils.logger import get_logger, setup_logging

setup_logging()
log = get_logger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("service_started")
    yield
    shutdown_services()
    log.info("service_stopped")


# Initialize FastAPI app
app = FastAPI(
    title="LinkPulse",
    description="URL shortening with click analytics",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(links.router, prefix="/api", tags=["links"])
app.include_router(analytics.router, prefix="/api")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "LinkPulse"}


# Redirect endpoint (must be last to not conflict with other routes)
app.get("/{short_code}")(links.redirect_to_url)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
