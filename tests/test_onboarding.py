import asyncio
import json

import httpx
import pytest

from fieldops.context import Notification, NotificationQueue
from fieldops.errors import ErrorKind, IllegalTransition
from fieldops.models.domain import EntityType, OnboardingRecord
from fieldops.services.http.gateway import HttpGateway
from fieldops.services.onboarding.pipeline import (
    OTP_FAILURE_MESSAGE,
    OTP_FAILURE_TITLE,
    OnboardingPipeline,
    OnboardingState,
    normalize_phone,
)

from conftest import FakeBackend

DEALER_FORM = {
    "shop_name": "Green Valley Agro",
    "owner_name": "Faisal",
    "phone": "055-123-4567",
    "latitude": 24.71361234,
    "longitude": 46.67529876,
}
FARMER_FORM = {"farmer_name": "Saad", "mobile_no": "0501112222", "village": "Diriyah"}


def _blocking_handler(entered: asyncio.Event, release: asyncio.Event, response: httpx.Response):
    async def handler(request: httpx.Request) -> httpx.Response:
        entered.set()
        await release.wait()
        return response

    return handler


def _paths(backend: FakeBackend) -> list[str]:
    return [f"{request.method} {request.url.path.removeprefix('/api/')}" for request in backend.requests]


def test_normalize_phone() -> None:
    assert normalize_phone("+966 55-123 4567") == "966551234567"
    assert normalize_phone(None) == ""


async def test_dealer_create_patches_corrected_phone_before_otp(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    backend.route("POST", "dealer/create/", json={"id": "d-7"})
    backend.route("PATCH", "dealer/d-7/", json={"id": "d-7", "phone": "0559876543"})
    backend.route("POST", "dealer/d-7/send-otp/", json={"detail": "OTP sent"})
    pipeline = OnboardingPipeline(gateway, EntityType.DEALER, notifier)

    record = await pipeline.submit(DEALER_FORM, phone="0559876543")

    assert _paths(backend) == ["POST dealer/create/", "PATCH dealer/d-7/", "POST dealer/d-7/send-otp/"]
    create_body = json.loads(backend.requests[0].content)
    assert create_body["phone"] == "0551234567"
    assert create_body["latitude"] == 24.713612
    assert json.loads(backend.requests[1].content) == {"phone": "0559876543"}
    assert backend.requests[0].extensions["timeout"]["read"] is None
    assert backend.requests[2].extensions["timeout"]["read"] == 10.0
    assert record.entity_id == "d-7"
    assert record.phone == "0559876543"
    assert record.otp_dispatched
    assert pipeline.state is OnboardingState.AWAITING_VERIFICATION
    assert notifier.drain() == []


async def test_farmer_create_uses_mobile_no_and_bounded_timeout(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    backend.route("POST", "farmer/create/", json={"farmer_id": 31})
    backend.route("POST", "farmer/31/send-otp/", json={})
    pipeline = OnboardingPipeline(gateway, EntityType.FARMER, notifier)

    record = await pipeline.submit(FARMER_FORM)

    assert _paths(backend) == ["POST farmer/create/", "POST farmer/31/send-otp/"]
    assert backend.requests[0].extensions["timeout"]["read"] == 10.0
    assert record.entity_id == "31"
    assert record.phone == "0501112222"


async def test_rapid_double_submit_creates_once(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    backend.route("POST", "dealer/create/", json={"id": "d-7"})
    backend.route("POST", "dealer/d-7/send-otp/", json={})
    pipeline = OnboardingPipeline(gateway, EntityType.DEALER, notifier)

    first, second = await asyncio.gather(pipeline.submit(DEALER_FORM), pipeline.submit(DEALER_FORM))

    assert first is not None
    assert second is None
    assert len(backend.calls("POST", "dealer/create/")) == 1
    assert len(backend.calls("POST", "dealer/d-7/send-otp/")) == 1


async def test_second_tap_during_otp_makes_no_call(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    entered, release = asyncio.Event(), asyncio.Event()
    backend.route("POST", "farmer/create/", json={"id": 31})
    backend.route("POST", "farmer/31/send-otp/", _blocking_handler(entered, release, httpx.Response(200, json={})))
    pipeline = OnboardingPipeline(gateway, EntityType.FARMER, notifier)

    first = asyncio.create_task(pipeline.submit(FARMER_FORM))
    await entered.wait()
    assert pipeline.in_flight
    assert pipeline.state is OnboardingState.SENDING_OTP

    assert await pipeline.submit(FARMER_FORM) is None
    release.set()
    await first

    assert len(backend.calls("POST", "farmer/31/send-otp/")) == 1
    assert not pipeline.in_flight


async def test_second_resend_tap_makes_no_call(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    backend.route("POST", "farmer/create/", json={"id": 31})
    backend.route("POST", "farmer/31/send-otp/", json={})
    pipeline = OnboardingPipeline(gateway, EntityType.FARMER, notifier)
    await pipeline.submit(FARMER_FORM)

    entered, release = asyncio.Event(), asyncio.Event()
    backend.route("POST", "farmer/31/send-otp/", _blocking_handler(entered, release, httpx.Response(200, json={})))
    first = asyncio.create_task(pipeline.resend_otp())
    await entered.wait()
    assert pipeline.state is OnboardingState.SENDING_OTP

    assert await pipeline.resend_otp() is None
    release.set()
    await first

    assert len(backend.calls("POST", "farmer/31/send-otp/")) == 2
    assert pipeline.state is OnboardingState.AWAITING_VERIFICATION
    assert not pipeline.in_flight


async def test_otp_failure_still_opens_verification(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    otp_attempts = 0

    def send_otp(request: httpx.Request) -> httpx.Response:
        nonlocal otp_attempts
        otp_attempts += 1
        if otp_attempts == 1:
            return httpx.Response(500, json={"detail": "SMS gateway down"})
        return httpx.Response(200, json={})

    backend.route("POST", "dealer/create/", json={"dealer_id": 9})
    backend.route("POST", "dealer/9/send-otp/", send_otp)
    pipeline = OnboardingPipeline(gateway, EntityType.DEALER, notifier)

    record = await pipeline.submit(DEALER_FORM)

    assert pipeline.state is OnboardingState.AWAITING_VERIFICATION
    assert record.entity_id == "9"
    assert not record.otp_dispatched
    assert pipeline.last_error.kind is ErrorKind.SERVER
    assert notifier.drain() == [Notification("alert", OTP_FAILURE_TITLE, OTP_FAILURE_MESSAGE)]

    await pipeline.resend_otp()

    assert record.otp_dispatched
    assert len(backend.calls("POST", "dealer/create/")) == 1


async def test_resubmit_after_creation_only_sends_otp(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    backend.route("POST", "dealer/create/", json={"id": "d-7"})
    backend.route("POST", "dealer/d-7/send-otp/", status_code=502, json={})
    pipeline = OnboardingPipeline(gateway, EntityType.DEALER, notifier)
    await pipeline.submit(DEALER_FORM)

    backend.route("POST", "dealer/d-7/send-otp/", json={})
    record = await pipeline.submit(DEALER_FORM)

    assert len(backend.calls("POST", "dealer/create/")) == 1
    assert len(backend.calls("POST", "dealer/d-7/send-otp/")) == 2
    assert record.otp_dispatched


async def test_create_validation_error_returns_to_draft(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    backend.route("POST", "farmer/create/", status_code=400, json={"mobile_no": ["Enter a valid number."]})
    pipeline = OnboardingPipeline(gateway, EntityType.FARMER, notifier)

    record = await pipeline.submit(FARMER_FORM)

    assert record.entity_id is None
    assert pipeline.state is OnboardingState.DRAFT
    assert pipeline.last_error.kind is ErrorKind.VALIDATION
    assert notifier.drain() == [Notification("alert", "Validation Error", "Please fix the highlighted fields.")]
    assert backend.calls("POST", "farmer/create/")
    assert not [request for request in backend.requests if "send-otp" in request.url.path]


async def test_create_without_id_is_a_server_error(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    backend.route("POST", "farmer/create/", json={"status": "created"})
    pipeline = OnboardingPipeline(gateway, EntityType.FARMER, notifier)

    await pipeline.submit(FARMER_FORM)

    assert pipeline.state is OnboardingState.DRAFT
    assert [item.title for item in notifier.drain()] == ["Server Error"]


async def test_close_cancels_silently(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    entered, release = asyncio.Event(), asyncio.Event()
    backend.route("POST", "dealer/create/", _blocking_handler(entered, release, httpx.Response(200, json={"id": 1})))
    pipeline = OnboardingPipeline(gateway, EntityType.DEALER, notifier)

    pending = asyncio.create_task(pipeline.submit(DEALER_FORM))
    await entered.wait()
    pipeline.close()
    record = await pending

    assert record.entity_id is None
    assert pipeline.state is OnboardingState.DRAFT
    assert pipeline.last_error.kind is ErrorKind.CANCELLED
    assert notifier.drain() == []
    assert await pipeline.submit(DEALER_FORM) is None
    assert len(backend.calls("POST", "dealer/create/")) == 1


async def test_verification_runs_the_hook(
    gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue
) -> None:
    backend.route("POST", "farmer/create/", json={"id": 31})
    backend.route("POST", "farmer/31/send-otp/", json={})
    verified: list[OnboardingRecord] = []

    async def on_verified(record: OnboardingRecord) -> None:
        verified.append(record)

    pipeline = OnboardingPipeline(gateway, EntityType.FARMER, notifier, on_verified=on_verified)
    await pipeline.submit(FARMER_FORM)

    record = await pipeline.mark_verified()

    assert record.verified
    assert verified == [record]
    assert pipeline.state is OnboardingState.VERIFIED


async def test_sync_verification_hook(gateway: HttpGateway, backend: FakeBackend, notifier: NotificationQueue) -> None:
    backend.route("POST", "farmer/create/", json={"id": 31})
    backend.route("POST", "farmer/31/send-otp/", json={})
    seen = []
    pipeline = OnboardingPipeline(gateway, EntityType.FARMER, notifier, on_verified=lambda record: seen.append(record.entity_id))
    await pipeline.submit(FARMER_FORM)

    await pipeline.mark_verified()

    assert seen == ["31"]


async def test_illegal_transitions(gateway: HttpGateway, notifier: NotificationQueue) -> None:
    pipeline = OnboardingPipeline(gateway, EntityType.DEALER, notifier)

    with pytest.raises(IllegalTransition):
        await pipeline.mark_verified()
    with pytest.raises(IllegalTransition):
        await pipeline.resend_otp()
    assert pipeline.state is OnboardingState.DRAFT
