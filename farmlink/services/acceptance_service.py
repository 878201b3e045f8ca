"""Award exactly one competing offer on an open target.

Used for both (ProduceLot, ProductBid) and (DeliveryRequest, Quote). The
guard runs first with no side effects; the commit phase claims the target
with a conditional UPDATE on its expected status and version, so when two
owners race only one statement matches a row and the loser gets a
``ConflictError``. Winner promotion, sibling rejection and the downstream
spawn share that single session transaction and roll back together.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.exceptions import (
    BidNotFoundError,
    ConflictError,
    ForbiddenError,
    LotNotFoundError,
    QuoteNotFoundError,
    RequestNotFoundError,
)
from farmlink.models.delivery import DeliveryRequest, Quote
from farmlink.models.lot import ProduceLot, ProductBid

logger = logging.getLogger(__name__)

Spawn = Callable[[AsyncSession, Any, Any], Awaitable[Any]]


@dataclass(frozen=True)
class Arena:
    """Describes one target/offer pairing the arbiter can settle."""

    label: str
    target_model: type
    offer_model: type
    owner_attr: str
    parent_attr: str
    target_missing: Callable[[str], Exception]
    offer_missing: Callable[[str], Exception]


LOT_ARENA = Arena(
    label="Lot",
    target_model=ProduceLot,
    offer_model=ProductBid,
    owner_attr="farmer_id",
    parent_attr="lot_id",
    target_missing=LotNotFoundError,
    offer_missing=BidNotFoundError,
)

REQUEST_ARENA = Arena(
    label="Request",
    target_model=DeliveryRequest,
    offer_model=Quote,
    owner_attr="buyer_id",
    parent_attr="request_id",
    target_missing=RequestNotFoundError,
    offer_missing=QuoteNotFoundError,
)


@dataclass
class Award:
    target: Any
    offer: Any
    spawned: Any
    rejected_count: int


async def _load(db: AsyncSession, model: type, entity_id: str):
    result = await db.execute(
        select(model)
        .where(model.id == entity_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def check_guard(
    db: AsyncSession, arena: Arena, *, owner_id: str, target_id: str, offer_id: str
) -> tuple[Any, Any]:
    """Validate an accept attempt without touching any row."""
    target = await _load(db, arena.target_model, target_id)
    if target is None:
        raise arena.target_missing(target_id)
    if str(getattr(target, arena.owner_attr)) != str(owner_id):
        raise ForbiddenError(f"Not the owner of this {arena.label.lower()}")
    if target.status != "open":
        raise ConflictError(f"{arena.label} is not open")

    offer = await _load(db, arena.offer_model, offer_id)
    if offer is None or getattr(offer, arena.parent_attr) != target.id:
        raise arena.offer_missing(offer_id)
    if offer.status != "pending":
        raise ConflictError(f"{arena.offer_model.__name__} is '{offer.status}', expected 'pending'")
    return target, offer


async def award(
    db: AsyncSession,
    arena: Arena,
    *,
    owner_id: str,
    target_id: str,
    offer_id: str,
    spawn: Spawn,
) -> Award:
    """Accept *offer_id* on *target_id*, reject its siblings and spawn the next stage."""
    target, offer = await check_guard(
        db, arena, owner_id=owner_id, target_id=target_id, offer_id=offer_id
    )
    target_model, offer_model = arena.target_model, arena.offer_model
    parent_col = getattr(offer_model, arena.parent_attr)

    try:
        claimed = await db.execute(
            update(target_model)
            .where(
                target_model.id == target.id,
                target_model.status == "open",
                target_model.version == target.version,
            )
            .values(status="awarded", version=target_model.version + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise ConflictError(f"{arena.label} is no longer open")

        promoted = await db.execute(
            update(offer_model)
            .where(offer_model.id == offer.id, offer_model.status == "pending")
            .values(status="accepted")
            .execution_options(synchronize_session=False)
        )
        if promoted.rowcount != 1:
            raise ConflictError(f"{offer_model.__name__} is no longer pending")

        rejected = await db.execute(
            update(offer_model)
            .where(
                parent_col == target.id,
                offer_model.id != offer.id,
                offer_model.status == "pending",
            )
            .values(status="rejected")
            .execution_options(synchronize_session=False)
        )

        spawned = await spawn(db, target, offer)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.warning(
            "Award of %s %s to %s rolled back", arena.label.lower(), target_id, offer_id
        )
        raise

    await db.refresh(target)
    await db.refresh(offer)
    logger.info(
        "Awarded %s %s to %s %s (%d siblings rejected)",
        arena.label.lower(), target.id, offer_model.__name__, offer.id, rejected.rowcount,
    )
    return Award(target=target, offer=offer, spawned=spawned, rejected_count=rejected.rowcount)
