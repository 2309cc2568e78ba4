"""
FlatScan API - Main application entry point
Turns document photos into flattened, rectangular scans
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flatscan.routers import scan, sessions
from flatscan.models.schemas import HealthResponse, RootResponse

VERSION = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI app
app = FastAPI(
    title="FlatScan API",
    description="Document corner detection and perspective rectification.",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware - allow all origins for now
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this to specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(scan.router)
app.include_router(sessions.router)


@app.get("/", response_model=RootResponse)
async def root():
    """Root endpoint - API information"""
    return RootResponse(
        name="FlatScan API",
        docs="/docs"
    )


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint"""
    return HealthResponse(
        status="ok",
        version=VERSION
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
