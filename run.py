#!/usr/bin/env python3
"""Convenience runner for the ride stage analysis tool.

Usage:
    python run.py --analyse --countries GB ride.gpx
"""
import logging
import sys

from ride_stages.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    sys.exit(main())
