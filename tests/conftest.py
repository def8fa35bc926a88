"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import of the settings module so
every test sees the same configuration regardless of local .env files.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("THROTTLE_ENABLED", "true")
os.environ.setdefault("THROTTLE_SWEEP_INTERVAL_SECONDS", "60")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FORMAT", "json")
