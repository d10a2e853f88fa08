#!/usr/bin/env python

"""
Blivalley - Main Entry Point

A project/task tracking service: projects made of milestones and tasks,
progress tracking, and timed work sessions with notes.

Usage:
    python main.py

Configuration:
    config/settings.yaml or BLIVALLEY_* environment variables
"""

import logging
import sys

import uvicorn

from blivalley.api import create_app
from blivalley.infra.config import get_settings


def main():
    """Main entry point"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
