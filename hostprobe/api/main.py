"""
FastAPI application for hostprobe
"""
import logging

from fastapi import FastAPI

from hostprobe import __version__
from hostprobe.api.routers import commands, scan

logger = logging.getLogger(__name__)

app = FastAPI(
    title="hostprobe API",
    description="Enumerate security-relevant configuration of Windows hosts",
    version=__version__,
)

app.include_router(commands.router)
app.include_router(scan.router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": "hostprobe API",
        "version": __version__,
        "endpoints": [
            "/commands - Available commands",
            "/scan - Run commands against targets",
            "/docs - API documentation",
            "/health - Health check",
        ],
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "hostprobe"}


if __name__ == "__main__":
    import uvicorn
    from hostprobe.logging_setup import configure_logging

    configure_logging("INFO")
    uvicorn.run(app, host="127.0.0.1", port=8000)
