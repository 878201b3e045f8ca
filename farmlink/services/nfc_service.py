"""Bind physical NFC tags to drivers and resolve a scanned tag back to its driver."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.config import settings
from farmlink.core.exceptions import BadRequestError, NotFoundError, TagConflictError, TagNotFoundError
from farmlink.models.driver_tag import DriverTag

logger = logging.getLogger(__name__)


def resolve_tag(tag_id: str | None = None, ndef_text: str | None = None) -> str:
    """Turn a raw tag id or an NDEF text record into the stored tag id.

    ``fty:driver:<id>`` payloads map to ``NDEF:<id>``.
    """
    if tag_id:
        return tag_id
    prefix = settings.nfc_ndef_prefix
    if ndef_text and ndef_text.startswith(prefix):
        suffix = ndef_text.split(":")[-1]
        if suffix:
            return f"NDEF:{suffix}"
    raise BadRequestError("Tag ID or valid NDEF text is required")


async def bind(
    db: AsyncSession, driver_id: str, tag_id: str | None = None, ndef_text: str | None = None
) -> DriverTag:
    derived = resolve_tag(tag_id, ndef_text)
    result = await db.execute(select(DriverTag).where(DriverTag.tag_id == derived))
    tag = result.scalar_one_or_none()

    if tag is not None and str(tag.driver_id) != str(driver_id):
        raise TagConflictError()

    if tag is None:
        tag = DriverTag(driver_id=driver_id, tag_id=derived, ndef_text=ndef_text, active=True)
        db.add(tag)
        logger.info("Bound tag %s to driver %s", derived, driver_id)
    else:
        tag.active = True
        tag.ndef_text = ndef_text or tag.ndef_text
    await db.commit()
    await db.refresh(tag)
    return tag


async def lookup(db: AsyncSession, tag_id: str) -> DriverTag:
    """Active binding for *tag_id* or 404."""
    result = await db.execute(
        select(DriverTag).where(DriverTag.tag_id == tag_id, DriverTag.active.is_(True))
    )
    tag = result.scalar_one_or_none()
    if tag is None:
        raise TagNotFoundError(tag_id)
    return tag


async def list_tags(db: AsyncSession, driver_id: str) -> list[DriverTag]:
    result = await db.execute(
        select(DriverTag)
        .where(DriverTag.driver_id == driver_id, DriverTag.active.is_(True))
        .order_by(DriverTag.created_at.desc())
    )
    return list(result.scalars().all())


async def remove_tag(db: AsyncSession, driver_id: str, record_id: str) -> DriverTag:
    result = await db.execute(
        select(DriverTag).where(DriverTag.id == record_id, DriverTag.driver_id == driver_id)
    )
    tag = result.scalar_one_or_none()
    if tag is None:
        raise NotFoundError("Tag not found")
    tag.active = False
    await db.commit()
    await db.refresh(tag)
    return tag
