"""Two-phase escrow: authorize a hold, later capture it.

The ledger only talks to the provider and stages ``PaymentIntent`` rows. It
never moves an intent between states on its own; the job checkpoint handlers
decide when a capture result becomes a ``released`` intent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.config import settings
from farmlink.core.exceptions import InvalidStateError, UpstreamUnavailableError
from farmlink.models.payment import PaymentIntent

logger = logging.getLogger(__name__)

INTENT_TYPES = ("product", "transport")
ZERO_DECIMAL_CURRENCIES = frozenset({"ugx", "rwf", "bif", "jpy", "krw", "xaf", "xof"})


@dataclass(frozen=True)
class ProviderHold:
    provider: str
    provider_ref: str


@dataclass(frozen=True)
class CaptureResult:
    ok: bool
    provider_ref: str | None = None


class EscrowProvider(Protocol):
    name: str

    async def authorize(self, amount: Decimal, payer_ref: str, *, target_ref: str) -> ProviderHold: ...

    async def capture(self, provider_ref: str) -> bool: ...


class MockEscrowProvider:
    """Accepts every hold and every capture."""

    name = "mock"

    async def authorize(self, amount: Decimal, payer_ref: str, *, target_ref: str) -> ProviderHold:
        return ProviderHold(provider=self.name, provider_ref=f"pi_{target_ref}")

    async def capture(self, provider_ref: str) -> bool:
        return True


class StripeEscrowProvider:
    """Holds funds as manual-capture Stripe PaymentIntents.

    The Stripe SDK is synchronous, so calls run in a worker thread.
    """

    name = "stripe"

    def __init__(self, secret_key: str, *, currency: str | None = None, client=None):
        if client is None:
            import stripe

            stripe.api_key = secret_key
            client = stripe
        self._stripe = client
        self.currency = (currency or settings.escrow_currency).lower()

    def _minor_units(self, amount: Decimal) -> int:
        # Zero-decimal currencies are sent in whole units
        if self.currency in ZERO_DECIMAL_CURRENCIES:
            return int(amount)
        return int(amount * 100)

    async def authorize(self, amount: Decimal, payer_ref: str, *, target_ref: str) -> ProviderHold:
        intent = await asyncio.to_thread(
            self._stripe.PaymentIntent.create,
            amount=self._minor_units(amount),
            currency=self.currency,
            capture_method="manual",
            metadata={"payer": payer_ref, "target": target_ref},
        )
        logger.info("Stripe hold %s placed for %s", intent.id, target_ref)
        return ProviderHold(provider=self.name, provider_ref=intent.id)

    async def capture(self, provider_ref: str) -> bool:
        intent = await asyncio.to_thread(self._stripe.PaymentIntent.capture, provider_ref)
        return intent.status == "succeeded"


def get_escrow_provider(name: str | None = None) -> EscrowProvider:
    name = (name or settings.escrow_provider).lower()
    if name == "mock":
        return MockEscrowProvider()
    if name == "stripe":
        if not settings.stripe_secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required for the stripe escrow provider")
        return StripeEscrowProvider(settings.stripe_secret_key)
    raise ValueError(f"Unsupported escrow provider '{name}'")


class EscrowLedger:
    def __init__(
        self,
        provider: EscrowProvider,
        *,
        timeout_seconds: float | None = None,
        currency: str | None = None,
    ):
        self.provider = provider
        self.timeout_seconds = timeout_seconds or settings.escrow_timeout_seconds
        self.currency = currency or settings.escrow_currency

    async def authorize(
        self,
        db: AsyncSession,
        *,
        target_id: str,
        payer_id: str,
        amount: Decimal,
        intent_type: str,
        driver_id: str | None = None,
    ) -> PaymentIntent:
        """Place a hold with the provider and stage an ``authorized`` intent.

        The intent is added to *db* but not committed; the caller owns the
        transaction so the hold lands together with the entity it pays for.
        """
        if intent_type not in INTENT_TYPES:
            raise ValueError(f"Unknown intent type '{intent_type}'")
        try:
            hold = await asyncio.wait_for(
                self.provider.authorize(Decimal(str(amount)), payer_id, target_ref=target_id),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Escrow authorize timed out for %s %s", intent_type, target_id)
            raise UpstreamUnavailableError("Escrow provider timed out")

        intent = PaymentIntent(
            job_id=target_id,
            buyer_id=payer_id,
            driver_id=driver_id,
            amount=Decimal(str(amount)),
            currency=self.currency,
            type=intent_type,
            status="authorized",
            provider=hold.provider,
            provider_ref=hold.provider_ref,
        )
        db.add(intent)
        await db.flush()
        logger.info(
            "Authorized %s escrow %s for %s (amount=%s)",
            intent_type, intent.id, target_id, intent.amount,
        )
        return intent

    async def capture(self, intent: PaymentIntent) -> CaptureResult:
        """Ask the provider to capture an authorized hold.

        Timeouts and provider errors come back as ``ok=False``.
        """
        if intent.status != "authorized":
            raise InvalidStateError("Payment intent", intent.status, "authorized")
        try:
            ok = await asyncio.wait_for(
                self.provider.capture(intent.provider_ref),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Escrow capture timed out for intent %s", intent.id)
            return CaptureResult(ok=False, provider_ref=intent.provider_ref)
        except Exception:
            logger.exception("Escrow capture raised for intent %s", intent.id)
            return CaptureResult(ok=False, provider_ref=intent.provider_ref)
        return CaptureResult(ok=bool(ok), provider_ref=intent.provider_ref)


async def find_authorized(db: AsyncSession, job_id: str, intent_type: str) -> PaymentIntent | None:
    result = await db.execute(
        select(PaymentIntent)
        .where(
            PaymentIntent.job_id == job_id,
            PaymentIntent.type == intent_type,
            PaymentIntent.status == "authorized",
        )
        .order_by(PaymentIntent.created_at.desc())
    )
    return result.scalars().first()


async def list_intents(db: AsyncSession, *target_ids: str) -> list[PaymentIntent]:
    """All intents keyed on any of *target_ids*, oldest first."""
    ids = [t for t in target_ids if t]
    if not ids:
        return []
    result = await db.execute(
        select(PaymentIntent)
        .where(PaymentIntent.job_id.in_(ids))
        .order_by(PaymentIntent.created_at.asc())
    )
    return list(result.scalars().all())
