"""Request broker: driver discovery, quoting and the award that opens a job."""

import uuid

import pytest
from sqlalchemy import select

from farmlink.core.async_tasks import drain_background_tasks
from farmlink.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from farmlink.models.delivery import Quote
from farmlink.models.payment import PaymentIntent
from farmlink.services import request_service
from farmlink.services.request_service import generate_checkpoint_codes

GULU = {"name": "Gulu", "address": "Gulu", "lat": 2.7724, "lng": 32.2881}
NEAR_KAMPALA = {"lat": 0.35, "lng": 32.6}


def _id() -> str:
    return str(uuid.uuid4())


def test_checkpoint_codes_are_distinct_four_digit_strings():
    for _ in range(200):
        farmer_code, buyer_code = generate_checkpoint_codes()
        assert farmer_code != buyer_code
        for code in (farmer_code, buyer_code):
            assert len(code) == 4 and code.isdigit()
            assert 1000 <= int(code) <= 9999


async def test_open_requests_filters_by_distance(db, make_request):
    near = await make_request(_id())
    far = await make_request(_id(), pickup=GULU)

    rows = await request_service.open_requests(db, _id(), near=NEAR_KAMPALA)
    assert [r.id for r in rows] == [near.id]

    rows = await request_service.open_requests(db, _id(), near=NEAR_KAMPALA, radius_km=500)
    assert {r.id for r in rows} == {near.id, far.id}

    rows = await request_service.open_requests(db, _id())
    assert {r.id for r in rows} == {near.id, far.id}


async def test_open_requests_hides_already_quoted(db, make_request, make_quote):
    driver = _id()
    quoted = await make_request(_id())
    fresh = await make_request(_id())
    await make_quote(driver, quoted.id)

    rows = await request_service.open_requests(db, driver)
    assert [r.id for r in rows] == [fresh.id]

    rows = await request_service.open_requests(db, driver, include_quoted=True)
    assert {r.id for r in rows} == {quoted.id, fresh.id}


async def test_submit_quote_emits_event(db, make_request, make_quote, bus):
    request = await make_request(_id())
    quote = await make_quote(_id(), request.id)
    await drain_background_tasks()

    assert quote.status == "pending"
    assert quote.currency == "UGX"
    assert "request:quote" in bus.names()


async def test_second_active_quote_is_conflict(db, make_request, make_quote):
    request = await make_request(_id())
    driver = _id()
    await make_quote(driver, request.id)
    with pytest.raises(ConflictError) as exc:
        await make_quote(driver, request.id, amount=35_000)
    assert exc.value.status_code == 400


async def test_withdrawn_quote_allows_requoting(db, make_request, make_quote):
    request = await make_request(_id())
    driver = _id()
    quote = await make_quote(driver, request.id)
    await request_service.withdraw_quote(db, driver, quote.id)
    again = await make_quote(driver, request.id, amount=30_000)

    mine = await request_service.get_my_quote(db, driver, request.id)
    assert mine.id == again.id


async def test_quotes_ordered_cheapest_first(db, make_request, make_quote):
    buyer = _id()
    request = await make_request(buyer)
    first_cheap = await make_quote(_id(), request.id, amount=30_000)
    dear = await make_quote(_id(), request.id, amount=60_000)
    second_cheap = await make_quote(_id(), request.id, amount=30_000)

    quotes = await request_service.list_quotes(db, buyer, request.id)
    assert [q.id for q in quotes] == [first_cheap.id, second_cheap.id, dear.id]

    _, count = await request_service.get_request(db, buyer, request.id)
    assert count == 3


async def test_other_buyer_cannot_read_request(db, make_request):
    request = await make_request(_id())
    with pytest.raises(ForbiddenError):
        await request_service.get_request(db, _id(), request.id)


async def test_accept_quote_opens_job_with_transport_hold(
    db, make_request, make_quote, escrow, notifier, bus,
):
    buyer, driver, other = _id(), _id(), _id()
    request = await make_request(buyer, farmer_id="farmer-1")
    chosen = await make_quote(driver, request.id, amount=15_000)
    passed_over = await make_quote(other, request.id, amount=12_000)

    job = await request_service.accept_quote(
        db, buyer, request.id, chosen.id, escrow=escrow, notifier=notifier
    )
    await drain_background_tasks()

    assert job.status == "awaiting_driver_confirm"
    assert job.accepted_by == driver
    assert job.accepted_quote_id == chosen.id
    assert job.farmer_id == "farmer-1"
    assert job.farmer_code != job.buyer_code
    assert job.reference_no.startswith("JOB-")
    assert float(job.payment_amount) == 15_000

    statuses = dict((await db.execute(select(Quote.id, Quote.status))).all())
    assert statuses == {chosen.id: "accepted", passed_over.id: "rejected"}

    request, _ = await request_service.get_request(db, buyer, request.id)
    assert request.status == "awarded"
    assert request.chosen_quote_id == chosen.id
    assert request.job_id == job.id

    intent = (await db.execute(select(PaymentIntent))).scalar_one()
    assert (intent.type, intent.status, intent.job_id, intent.driver_id) == (
        "transport", "authorized", job.id, driver,
    )
    assert ("quote:accepted", {"requestId": request.id, "driverId": driver, "jobId": job.id}) in bus.events


async def test_quote_on_awarded_request_is_conflict(db, make_request, make_quote, escrow, notifier):
    buyer = _id()
    request = await make_request(buyer)
    quote = await make_quote(_id(), request.id)
    await request_service.accept_quote(db, buyer, request.id, quote.id, escrow=escrow, notifier=notifier)

    with pytest.raises(ConflictError):
        await make_quote(_id(), request.id)


async def test_get_my_quote_missing(db):
    with pytest.raises(NotFoundError):
        await request_service.get_my_quote(db, _id(), _id())


async def test_list_my_quotes_by_status(db, make_request, make_quote, escrow, notifier):
    driver, buyer = _id(), _id()
    won = await make_request(buyer)
    waiting = await make_request(_id())
    won_quote = await make_quote(driver, won.id)
    pending_quote = await make_quote(driver, waiting.id)
    await request_service.accept_quote(db, buyer, won.id, won_quote.id, escrow=escrow, notifier=notifier)

    pending = await request_service.list_my_quotes(db, driver)
    accepted = await request_service.list_my_quotes(db, driver, "accepted")
    assert [q.id for q in pending] == [pending_quote.id]
    assert [q.id for q in accepted] == [won_quote.id]
