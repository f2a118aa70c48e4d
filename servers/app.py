"""
Nova API Server

FastAPI server for the Xiaohongshu drafting assistant.
Uses routers for endpoints and services for business logic.

Run with: python -m servers.app
"""

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from servers.config import config
from servers.logging_config import get_logger
from xhsnova import __version__
from xhsnova.database import Database

from servers.routers import (
    projects_router,
    chat_router,
    bluechat_router
)

logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Nova - Xiaohongshu Drafting Assistant",
    description="Backend API relaying AI assistant streams and persisting draft cards",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(projects_router)
app.include_router(chat_router)
app.include_router(bluechat_router)


@app.on_event("startup")
async def startup_event():
    """Create data directories and the database schema."""
    config.ensure_directories()
    Database().initialize_schema()
    logger.info(f"Database ready at {config.db_path}")


def main():
    logger.info("=" * 50)
    logger.info("Nova - Xiaohongshu Drafting Assistant")
    logger.info("=" * 50)
    logger.info(f"Starting server at: http://{config.host}:{config.port}")
    logger.info("Key Endpoints:")
    logger.info("  - POST /api/chat/stream       Assistant turn (SSE)")
    logger.info("  - POST /api/chat/deepseek     Single completion")
    logger.info("  - POST /api/bluechat/stream   Research canvas (SSE)")
    logger.info("  - GET  /api/projects          List projects")
    logger.info("  - GET  /api/health            Health check")
    logger.info("=" * 50)

    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
