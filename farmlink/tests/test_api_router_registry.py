"""Tests that API router registry remains explicit and stable."""

from farmlink.api import (
    API_PREFIX,
    API_ROUTERS,
    driver_jobs,
    driver_requests,
    farmer_jobs,
    health,
    lots,
    nfc,
    payments,
    requests,
)
from farmlink.main import app


def test_api_prefix():
    assert API_PREFIX == "/api"


def test_router_order_is_stable():
    assert API_ROUTERS == (
        health.router,
        lots.router,
        requests.router,
        driver_requests.router,
        driver_jobs.router,
        farmer_jobs.router,
        nfc.router,
        payments.router,
    )


def test_key_routes_are_mounted():
    paths = {route.path for route in app.routes}
    for path in (
        "/api/health",
        "/api/lots",
        "/api/lots/{lot_id}/bids/{bid_id}/accept",
        "/api/requests/{request_id}/quotes/{quote_id}/accept",
        "/api/driver/requests/open",
        "/api/driver/jobs/{job_id}/pickup-confirm",
        "/api/driver/jobs/{job_id}/delivery-confirm",
        "/api/farmer/jobs/filters",
        "/api/nfc/tags/register",
        "/api/payments/jobs/{job_id}/release-nfc",
        "/ws/events",
    ):
        assert path in paths, path
