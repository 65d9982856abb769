#!/usr/bin/env python
"""Start the sync engine API with the port taken from the environment."""
import logging
import os

import uvicorn

from stocksync.core.logging_config import configure_logging

if __name__ == "__main__":
    configure_logging()
    port = int(os.environ.get("PORT", 8000))

    logging.getLogger(__name__).info(f"Starting application on port {port}")

    uvicorn.run(
        "stocksync.main:app",
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
