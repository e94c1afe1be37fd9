"""Create-then-verify onboarding of a new farmer or dealer."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

from ...cancellation import CancellationScope
from ...config import settings
from ...errors import (
    Alerting,
    ErrorKind,
    FieldOpsError,
    IllegalTransition,
    OperationCancelled,
    present_error,
)
from ...models.domain import EntityType, OnboardingRecord
from ..geospatial import round_coordinate
from ..http.gateway import HttpGateway

logger = logging.getLogger(__name__)

VerifiedHook = Callable[[OnboardingRecord], Optional[Awaitable[None]]]

OTP_FAILURE_TITLE = "OTP Error"
OTP_FAILURE_MESSAGE = "Failed to send OTP. You can try resending from the prompt."

_UNSET = object()


class OnboardingState(str, Enum):
    DRAFT = "draft"
    CREATING = "creating"
    CREATED = "created"
    SENDING_OTP = "sending_otp"
    AWAITING_VERIFICATION = "awaiting_verification"
    VERIFIED = "verified"


TRANSITIONS: dict[OnboardingState, frozenset[OnboardingState]] = {
    OnboardingState.DRAFT: frozenset({OnboardingState.CREATING}),
    OnboardingState.CREATING: frozenset({OnboardingState.CREATED, OnboardingState.DRAFT}),
    OnboardingState.CREATED: frozenset({OnboardingState.SENDING_OTP}),
    OnboardingState.SENDING_OTP: frozenset({OnboardingState.AWAITING_VERIFICATION, OnboardingState.CREATED}),
    OnboardingState.AWAITING_VERIFICATION: frozenset({OnboardingState.SENDING_OTP, OnboardingState.VERIFIED}),
    OnboardingState.VERIFIED: frozenset(),
}


def normalize_phone(phone: Any) -> str:
    return re.sub(r"\D", "", str(phone or ""))


def _entity_id_from(payload: Any, entity_type: EntityType) -> str | None:
    if not isinstance(payload, dict):
        return None
    value = payload.get("id")
    if value is None:
        value = payload.get(f"{entity_type.value}_id")
    return str(value) if value is not None else None


class OnboardingPipeline:
    """One onboarding flow, owned by the form that opened it.

    Only one submission runs at a time: ``submit`` and ``resend_otp`` return
    ``None`` without touching the network while another step is in flight.
    Every call is bound to this pipeline's cancellation scope, so ``close``
    aborts whatever is still outstanding and the aborted step ends quietly.
    """

    def __init__(
        self,
        gateway: HttpGateway,
        entity_type: EntityType,
        notifier: Alerting,
        *,
        on_verified: VerifiedHook | None = None,
        create_timeout: float | None | object = _UNSET,
        otp_timeout: float | None = None,
    ) -> None:
        self._gateway = gateway
        self._notifier = notifier
        self._on_verified = on_verified
        self.entity_type = entity_type
        self.create_timeout = settings.create_timeout(entity_type.value) if create_timeout is _UNSET else create_timeout
        self.otp_timeout = otp_timeout if otp_timeout is not None else settings.otp_timeout_seconds
        self.record = OnboardingRecord(entity_type=entity_type)
        self.state = OnboardingState.DRAFT
        self.last_error: FieldOpsError | None = None
        self._in_flight = False
        self._closed = False
        self._scope = CancellationScope(f"onboarding-{entity_type.value}")

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def _transition(self, target: OnboardingState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise IllegalTransition("onboarding", self.state, target)
        logger.debug(f"Onboarding {self.entity_type.value}: {self.state.name} -> {target.name}")
        self.state = target

    def _begin(self) -> bool:
        if self._in_flight:
            logger.debug(f"Onboarding {self.entity_type.value}: submission already in flight, ignoring")
            return False
        if self._closed:
            logger.debug(f"Onboarding {self.entity_type.value}: pipeline closed, ignoring")
            return False
        self._in_flight = True
        self.last_error = None
        self._scope = CancellationScope(f"onboarding-{self.entity_type.value}")
        return True

    async def submit(self, payload: Mapping[str, Any], *, phone: str | None = None) -> OnboardingRecord | None:
        """Create the entity (first time) and request an OTP for ``phone``.

        When the entity already exists, only the OTP step runs, re-patching the
        phone if it was corrected.
        """

        if not self._begin():
            return None
        try:
            target_phone = phone if phone is not None else payload.get(self.entity_type.phone_field)
            if self.record.entity_id is None:
                if not await self._create(payload):
                    return self.record
            await self._dispatch_otp(target_phone)
            return self.record
        finally:
            self._in_flight = False

    async def resend_otp(self, phone: str | None = None) -> OnboardingRecord | None:
        if not self._begin():
            return None
        try:
            if self.state is not OnboardingState.AWAITING_VERIFICATION:
                raise IllegalTransition("onboarding", self.state, OnboardingState.SENDING_OTP)
            await self._dispatch_otp(phone)
            return self.record
        finally:
            self._in_flight = False

    async def mark_verified(self) -> OnboardingRecord:
        """Callback from the OTP prompt once the code was accepted."""

        self._transition(OnboardingState.VERIFIED)
        self.record.verified = True
        logger.info(f"{self.entity_type.label} {self.record.entity_id} verified")
        if self._on_verified is not None:
            result = self._on_verified(self.record)
            if result is not None:
                await result
        return self.record

    def close(self) -> None:
        """Teardown: abort outstanding calls; later submissions are ignored."""

        self._closed = True
        self._scope.cancel()

    def _fail(self, error: FieldOpsError, step: str) -> None:
        self.last_error = error
        if isinstance(error, OperationCancelled):
            logger.debug(f"Onboarding {self.entity_type.value}: {step} cancelled")
            return
        logger.warning(f"Onboarding {self.entity_type.value}: {step} failed ({error.kind.value}): {error}")

    def _create_payload(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        body = dict(payload)
        for field in ("latitude", "longitude"):
            if body.get(field) is not None:
                body[field] = round_coordinate(body[field])
        phone_field = self.entity_type.phone_field
        if body.get(phone_field) is not None:
            body[phone_field] = normalize_phone(body[phone_field])
        return body

    async def _create(self, payload: Mapping[str, Any]) -> bool:
        body = self._create_payload(payload)
        self._transition(OnboardingState.CREATING)
        try:
            response = await self._scope.run(
                self._gateway.post(
                    f"{self.entity_type.value}/create/",
                    json=body,
                    timeout=self.create_timeout,
                )
            )
        except FieldOpsError as error:
            self._transition(OnboardingState.DRAFT)
            self._fail(error, "create")
            present_error(self._notifier, error)
            return False

        entity_id = _entity_id_from(response, self.entity_type)
        if entity_id is None:
            # the record may exist server-side; nothing to verify against locally
            self._transition(OnboardingState.DRAFT)
            error = FieldOpsError("Create response did not include an id", kind=ErrorKind.SERVER)
            self._fail(error, "create")
            present_error(self._notifier, error)
            return False

        self.record.entity_id = entity_id
        self.record.phone = body.get(self.entity_type.phone_field) or ""
        self._transition(OnboardingState.CREATED)
        logger.info(f"{self.entity_type.label} created: {entity_id}")
        return True

    async def _dispatch_otp(self, phone: Any) -> None:
        entity_id = self.record.entity_id
        self._transition(OnboardingState.SENDING_OTP)
        try:
            normalized = normalize_phone(phone)
            if normalized and normalized != self.record.phone:
                await self._patch_phone(entity_id, normalized)
            await self._scope.run(
                self._gateway.post(
                    f"{self.entity_type.value}/{entity_id}/send-otp/",
                    json={},
                    timeout=self.otp_timeout,
                )
            )
        except OperationCancelled as error:
            self._transition(OnboardingState.CREATED)
            self._fail(error, "send-otp")
            return
        except FieldOpsError as error:
            # creation stands; the prompt still opens so the operator can resend
            self.record.otp_dispatched = False
            self._transition(OnboardingState.AWAITING_VERIFICATION)
            self._fail(error, "send-otp")
            if error.kind is not ErrorKind.UNAUTHORIZED:
                self._notifier.alert(OTP_FAILURE_TITLE, OTP_FAILURE_MESSAGE)
            return

        self.record.otp_dispatched = True
        self._transition(OnboardingState.AWAITING_VERIFICATION)
        logger.info(f"OTP dispatched for {self.entity_type.value} {entity_id}")

    async def _patch_phone(self, entity_id: str | None, phone: str) -> None:
        phone_field = self.entity_type.phone_field
        response = await self._scope.run(
            self._gateway.patch(f"{self.entity_type.value}/{entity_id}/", json={phone_field: phone})
        )
        confirmed = normalize_phone(response.get(phone_field)) if isinstance(response, dict) else ""
        self.record.phone = confirmed or phone
        logger.info(f"Phone updated for {self.entity_type.value} {entity_id}")
