import logging
import os
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI

from jobstate import __version__
from jobstate.state_routes import state_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="jobstate",
    description="Background job status and control API",
    version=__version__
)

app.include_router(state_router)


@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    logger.info(f"jobstate API starting, Redis at {os.environ.get('REDIS_URL', 'redis://localhost:6379/0')}")


@app.get("/api/health")
async def health_check():
    """Health endpoint."""
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


def main():
    """Run the API server."""
    uvicorn.run(
        "jobstate.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        log_level="info",
    )


if __name__ == "__main__":
    main()
