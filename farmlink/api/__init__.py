"""API router registry used by the app factory.

This keeps route module imports and inclusion order in one place so
`farmlink.main` stays focused on startup wiring.
"""

from __future__ import annotations

from fastapi import APIRouter

from . import (
    driver_jobs,
    driver_requests,
    farmer_jobs,
    health,
    lots,
    nfc,
    payments,
    requests,
)

API_PREFIX = "/api"

API_ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    lots.router,
    requests.router,
    driver_requests.router,
    driver_jobs.router,
    farmer_jobs.router,
    nfc.router,
    payments.router,
)

__all__ = ["API_PREFIX", "API_ROUTERS"]
