"""Request-scoped access to the capabilities the app factory installs."""

from fastapi import Request

from farmlink.services.escrow_service import EscrowLedger
from farmlink.services.notification_service import Notifier


def get_escrow(request: Request) -> EscrowLedger:
    return request.app.state.escrow


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier
