"""NFC identity gate: tag binding, NDEF resolution and lookup."""

import pytest

from farmlink.core.exceptions import BadRequestError, NotFoundError, TagConflictError, TagNotFoundError
from farmlink.services import nfc_service


def test_resolve_prefers_raw_tag_id():
    assert nfc_service.resolve_tag("04:A2:1B", "fty:driver:abc") == "04:A2:1B"


def test_resolve_maps_ndef_to_last_segment():
    assert nfc_service.resolve_tag(ndef_text="fty:driver:abc123") == "NDEF:abc123"
    assert nfc_service.resolve_tag(ndef_text="fty:driver:fleet:7") == "NDEF:7"


@pytest.mark.parametrize("ndef", [None, "", "other:driver:abc", "fty:driver:"])
def test_resolve_rejects_unusable_input(ndef):
    with pytest.raises(BadRequestError):
        nfc_service.resolve_tag(None, ndef)


async def test_bind_and_lookup(db):
    tag = await nfc_service.bind(db, "driver-1", tag_id="TAG-1")
    assert tag.active is True

    found = await nfc_service.lookup(db, "TAG-1")
    assert found.driver_id == "driver-1"


async def test_bind_via_ndef(db):
    await nfc_service.bind(db, "driver-1", ndef_text="fty:driver:driver-1")
    found = await nfc_service.lookup(db, "NDEF:driver-1")
    assert found.ndef_text == "fty:driver:driver-1"


async def test_bind_is_idempotent_for_same_driver(db):
    first = await nfc_service.bind(db, "driver-1", tag_id="TAG-1")
    second = await nfc_service.bind(db, "driver-1", tag_id="TAG-1")
    assert first.id == second.id


async def test_tag_owned_by_other_driver_conflicts(db):
    await nfc_service.bind(db, "driver-1", tag_id="TAG-1")
    with pytest.raises(TagConflictError) as exc:
        await nfc_service.bind(db, "driver-2", tag_id="TAG-1")
    assert exc.value.status_code == 409


async def test_lookup_unknown_tag(db):
    with pytest.raises(TagNotFoundError) as exc:
        await nfc_service.lookup(db, "nope")
    assert exc.value.status_code == 404


async def test_removed_tag_no_longer_resolves_and_can_be_rebound(db):
    tag = await nfc_service.bind(db, "driver-1", tag_id="TAG-1")
    await nfc_service.remove_tag(db, "driver-1", tag.id)

    with pytest.raises(TagNotFoundError):
        await nfc_service.lookup(db, "TAG-1")
    assert await nfc_service.list_tags(db, "driver-1") == []

    again = await nfc_service.bind(db, "driver-1", tag_id="TAG-1")
    assert again.active is True


async def test_remove_other_drivers_tag_is_not_found(db):
    tag = await nfc_service.bind(db, "driver-1", tag_id="TAG-1")
    with pytest.raises(NotFoundError):
        await nfc_service.remove_tag(db, "driver-2", tag.id)
