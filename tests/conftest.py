"""Shared pytest configuration for the integration test suite.

Runs the service against the in-memory record store with Redis intake
disabled, so no external services are needed.
"""

import os

os.environ.setdefault("VG_STORE_BACKEND", "memory")
os.environ.setdefault("VG_INTAKE_ENABLED", "false")
os.environ.setdefault("VG_LOG_JSON", "false")
