#!/usr/bin/env python
"""
Entry point for uvicorn: `uvicorn api_server:app`
"""
import logging

from content_studio.config import config
from content_studio.main import create_app

app = create_app()

logger = logging.getLogger(__name__)


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting Content Studio API server on port {config.PORT}")
    logger.info(f"Health check endpoint: http://0.0.0.0:{config.PORT}/health")
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=config.PORT,
        log_config=None,
        access_log=True,
    )
