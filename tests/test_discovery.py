"""Tests for the broadcast and mDNS discovery sources."""

from __future__ import annotations

from zeroconf import ServiceStateChange

from custom_components.dingz.discovery import (
    DiscoveryRecord,
    PuckBroadcastListener,
    PuckMdnsBrowser,
    parse_broadcast,
)

PACKET = bytes([0xAA, 0xBB, 0xCC, 0xDD, 0xEE, 0xFF, 108, 0])


def test_parse_broadcast() -> None:
    record = parse_broadcast(PACKET, ("192.168.1.50", 7979))

    assert record == DiscoveryRecord(mac="AABBCCDDEEFF", address="192.168.1.50")
    assert parse_broadcast(PACKET[:7], ("192.168.1.50", 7979)) is None
    assert parse_broadcast(PACKET[:6] + bytes([107, 0]), ("192.168.1.50", 7979)) is None


def test_broadcast_listener_forwards_valid_packets() -> None:
    seen: list[DiscoveryRecord] = []
    listener = PuckBroadcastListener(callback=seen.append)

    listener._handle_datagram(b"\x00" * 8, ("10.0.0.1", 7979))
    listener._handle_datagram(PACKET, ("10.0.0.2", 7979))

    assert seen == [DiscoveryRecord(mac="AABBCCDDEEFF", address="10.0.0.2")]


def test_mdns_browser_ignores_other_services() -> None:
    seen: list[DiscoveryRecord] = []
    browser = PuckMdnsBrowser(callback=seen.append)

    browser._on_service_state_change(
        None, "_http._tcp.local.", "printer._http._tcp.local.", ServiceStateChange.Added
    )
    browser._on_service_state_change(
        None, "_http._tcp.local.", "DINGZ-1._http._tcp.local.", ServiceStateChange.Removed
    )

    assert seen == []
    assert browser._tasks == set()
