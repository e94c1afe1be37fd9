import asyncio

import httpx
import pytest

from fieldops.errors import HardwareUnavailable, LocationPermissionRefused, PermissionDenied
from fieldops.services.location.geocoding import (
    GoogleReverseGeocoder,
    NominatimReverseGeocoder,
    ReverseGeocoder,
    build_geocoder,
)
from fieldops.services.location.provider import (
    Accuracy,
    ConfiguredPermissionBackend,
    LocationProvider,
    PermissionStatus,
    PositionSource,
    StaticPositionSource,
)


class FixedPositions(PositionSource):
    def __init__(self, latitude: float = 24.7136, longitude: float = 46.6753) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.reads: list[Accuracy] = []

    async def read(self, accuracy: Accuracy) -> tuple[float, float]:
        self.reads.append(accuracy)
        return self.latitude, self.longitude


class BrokenPositions(PositionSource):
    async def read(self, accuracy: Accuracy) -> tuple[float, float]:
        raise RuntimeError("GPS chip not responding")


class LabelGeocoder(ReverseGeocoder):
    def __init__(self, label: str | None = "King Fahd Rd, Riyadh", delay: float = 0.0, error: Exception | None = None):
        self.label = label
        self.delay = delay
        self.error = error
        self.closed = False

    async def reverse(self, latitude: float, longitude: float) -> str | None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.label

    async def aclose(self) -> None:
        self.closed = True


def _provider(
    status: str = "granted",
    *,
    grantable: bool = True,
    positions: PositionSource | None = None,
    geocoder: ReverseGeocoder | None = None,
    geocode_timeout: float | None = None,
) -> LocationProvider:
    return LocationProvider(
        ConfiguredPermissionBackend(status, grantable),
        positions or FixedPositions(),
        geocoder,
        geocode_timeout=geocode_timeout,
    )


async def test_acquire_fix_includes_address() -> None:
    positions = FixedPositions()
    provider = LocationProvider(ConfiguredPermissionBackend("granted"), positions, LabelGeocoder())

    fix = await provider.acquire_fix()

    assert (fix.latitude, fix.longitude) == (24.7136, 46.6753)
    assert fix.address == "King Fahd Rd, Riyadh"
    assert positions.reads == [Accuracy.BALANCED]


async def test_slow_geocoder_degrades_to_no_address() -> None:
    provider = _provider(geocoder=LabelGeocoder(delay=1.0), geocode_timeout=0.05)

    fix = await provider.acquire_fix()

    assert fix.address is None
    assert fix.latitude == 24.7136


async def test_failing_geocoder_degrades_to_no_address() -> None:
    provider = _provider(geocoder=LabelGeocoder(error=httpx.ConnectError("dns failure")))

    fix = await provider.acquire_fix()

    assert fix.address is None


async def test_undetermined_permission_is_requested_once() -> None:
    permissions = ConfiguredPermissionBackend("undetermined", grantable=True)
    provider = LocationProvider(permissions, FixedPositions())

    assert (await permissions.current()).can_ask_again
    assert await provider.request_when_needed()
    assert (await permissions.current()).status is PermissionStatus.GRANTED


async def test_permanently_denied_permission_is_not_requested() -> None:
    provider = _provider("denied")

    assert not await provider.request_when_needed()
    with pytest.raises(PermissionDenied):
        await provider.acquire_fix()


async def test_request_refused_by_user() -> None:
    provider = _provider("undetermined", grantable=False)

    with pytest.raises(PermissionDenied):
        await provider.acquire_fix()


async def test_position_failures_become_hardware_unavailable() -> None:
    provider = _provider(positions=BrokenPositions())

    with pytest.raises(HardwareUnavailable):
        await provider.acquire_fix()


async def test_out_of_range_reading_is_rejected() -> None:
    provider = _provider(positions=FixedPositions(latitude=124.7, longitude=46.6))

    with pytest.raises(HardwareUnavailable, match="invalid fix"):
        await provider.acquire_fix()
    assert await provider.acquire_fix_lenient() is None


async def test_unconfigured_static_source_is_unavailable() -> None:
    source = StaticPositionSource()
    source.latitude = source.longitude = None

    with pytest.raises(HardwareUnavailable):
        await source.read(Accuracy.BALANCED)


async def test_lenient_fix_swallows_location_errors() -> None:
    assert await _provider("denied").acquire_fix_lenient() is None
    assert (await _provider().acquire_fix_lenient()).latitude == 24.7136


async def test_startup_check() -> None:
    await _provider("undetermined", grantable=True).ensure_startup_permission()
    with pytest.raises(LocationPermissionRefused):
        await _provider("denied").ensure_startup_permission()


async def test_aclose_closes_the_geocoder() -> None:
    geocoder = LabelGeocoder()
    await _provider(geocoder=geocoder).aclose()
    assert geocoder.closed


async def test_google_geocoder_uses_formatted_address() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"status": "OK", "results": [{"formatted_address": "Olaya St, Riyadh 12211"}, {"formatted_address": "Riyadh"}]},
        )

    geocoder = GoogleReverseGeocoder(
        api_key="test-key",
        url="https://maps.test/geocode/json",
        transport=httpx.MockTransport(handler),
    )
    label = await geocoder.reverse(24.7136, 46.6753)
    await geocoder.aclose()

    assert label == "Olaya St, Riyadh 12211"
    assert seen[0].url.params["latlng"] == "24.7136,46.6753"
    assert seen[0].url.params["key"] == "test-key"


async def test_google_geocoder_without_results_or_key() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}))
    geocoder = GoogleReverseGeocoder(api_key="test-key", transport=transport)
    assert await geocoder.reverse(0.0, 0.0) is None
    await geocoder.aclose()

    calls = []
    keyless = GoogleReverseGeocoder(api_key="", transport=httpx.MockTransport(calls.append))
    keyless.api_key = None
    assert await keyless.reverse(0.0, 0.0) is None
    assert calls == []
    await keyless.aclose()


async def test_nominatim_geocoder_sends_user_agent() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"display_name": "Al Malaz, Riyadh, Saudi Arabia"})

    geocoder = NominatimReverseGeocoder(
        url="https://nominatim.test/reverse",
        user_agent="fieldops-tests",
        transport=httpx.MockTransport(handler),
    )
    label = await geocoder.reverse(24.66, 46.73)
    await geocoder.aclose()

    assert label == "Al Malaz, Riyadh, Saudi Arabia"
    assert seen[0].headers["User-Agent"] == "fieldops-tests"
    assert seen[0].url.params["format"] == "jsonv2"


def test_build_geocoder_by_provider() -> None:
    assert build_geocoder("none") is None
    assert isinstance(build_geocoder("nominatim"), NominatimReverseGeocoder)
    assert isinstance(build_geocoder("google"), GoogleReverseGeocoder)
