#!/usr/bin/env python3
"""
Development server runner for the Tessera backend.
"""

import uvicorn
from dotenv import load_dotenv

# Load environment variables before the settings are read
load_dotenv()

from tessera.core.config import get_settings  # noqa: E402


if __name__ == "__main__":
    settings = get_settings()

    print(f"Starting Tessera Backend on {settings.HOST}:{settings.PORT}")
    print(f"Debug mode: {settings.DEBUG}")
    print(f"Log level: {settings.LOG_LEVEL}")
    print(f"API docs available at: http://{settings.HOST}:{settings.PORT}/docs")

    uvicorn.run(
        "tessera.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True
    )
