#!/usr/bin/env python3
"""
Startup script for the turn authorization sample host.

Usage:
    python run.py
"""

import logging
import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

import uvicorn


def main():
    """Start the FastAPI application."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    uvicorn.run(
        "turn_authorization.hosting.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "3978")),
        reload=False,
        log_level="info"
    )


if __name__ == "__main__":
    main()
