#!/usr/bin/env python3
"""
Push Sync Service Entry Point

This script starts the GitHub → Rally push sync service.
"""

import uvicorn
from config.settings import Settings


def main():
    """Start the Push Sync service."""
    settings = Settings()

    uvicorn.run(
        "services.push_sync.main:app",
        host=settings.service.host,
        port=settings.service.port,
        reload=settings.debug,
        log_level=settings.monitoring.log_level.lower(),
        timeout_graceful_shutdown=settings.service.graceful_shutdown_timeout,
    )


if __name__ == "__main__":
    main()
