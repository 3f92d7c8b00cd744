from __future__ import annotations

import uuid

import pytest

from provisync.domain.model import Location
from provisync.domain.reconciliation import (
    ExpiringValue,
    LocationClaims,
    NoCandidateError,
    first_available,
)
from tests.helpers.factories import make_user


def _location(name: str) -> Location:
    return Location(id=uuid.uuid4(), name=name)


def test_first_available_orders_by_name() -> None:
    north, east = _location("North"), _location("east")

    assert first_available([north, east], ap_user=make_user()) == east
    assert first_available([], ap_user=make_user()) is None


def test_claims_never_hand_out_a_location_twice() -> None:
    claims = LocationClaims()
    first, second = _location("A"), _location("B")

    assert claims.claim([first, second], ap_user=make_user("One")) == first
    assert claims.claim([first, second], ap_user=make_user("Two")) == second
    assert first.id in claims
    with pytest.raises(NoCandidateError):
        claims.claim([first, second], ap_user=make_user("Three"))


def test_released_claims_can_be_reused() -> None:
    claims = LocationClaims()
    only = _location("Only")

    claims.claim([only], ap_user=make_user())
    claims.release(only.id)

    assert claims.claim([only], ap_user=make_user()) == only


def test_custom_selector_can_decline() -> None:
    claims = LocationClaims(lambda candidates, *, ap_user: None)

    with pytest.raises(NoCandidateError):
        claims.claim([_location("A")], ap_user=make_user())


def test_expiring_value_honours_ttl() -> None:
    now = [0.0]
    cache = ExpiringValue[str](ttl_seconds=10, clock=lambda: now[0])

    cache.put("locations")
    now[0] = 9.9
    assert cache.peek() == "locations"
    now[0] = 10.0
    assert cache.peek() is None


def test_zero_ttl_disables_caching() -> None:
    cache = ExpiringValue[str](ttl_seconds=0)

    cache.put("locations")

    assert cache.peek() is None


def test_invalidate_drops_the_value() -> None:
    cache = ExpiringValue[str](ttl_seconds=60)
    cache.put("locations")

    cache.invalidate()

    assert cache.peek() is None


def test_negative_ttl_is_rejected() -> None:
    with pytest.raises(ValueError, match="non-negative"):
        ExpiringValue[str](ttl_seconds=-1)
