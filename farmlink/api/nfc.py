from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.auth import Driver, require_driver
from farmlink.database import get_db
from farmlink.schemas.common import SuccessResponse
from farmlink.schemas.payment import TagListResponse, TagRef, TagRegisterResponse, TagResponse
from farmlink.services import nfc_service

router = APIRouter(prefix="/nfc", tags=["nfc"])


@router.get("/tags", response_model=TagListResponse)
async def list_tags(
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    tags = await nfc_service.list_tags(db, driver.id)
    return TagListResponse(tags=[_tag_to_response(t) for t in tags])


@router.post("/tags/register", response_model=TagRegisterResponse, status_code=201)
async def register_tag(
    req: TagRef,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    tag = await nfc_service.bind(db, driver.id, req.tag_id, req.ndef_text)
    return TagRegisterResponse(tag=_tag_to_response(tag))


@router.delete("/tags/{record_id}", response_model=SuccessResponse)
async def remove_tag(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    await nfc_service.remove_tag(db, driver.id, record_id)
    return SuccessResponse()


def _tag_to_response(tag) -> TagResponse:
    return TagResponse(
        id=tag.id,
        tag_id=tag.tag_id,
        ndef_text=tag.ndef_text,
        active=tag.active,
        created_at=tag.created_at,
    )
