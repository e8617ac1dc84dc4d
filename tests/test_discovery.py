"""Tests for DiscoveryEngine."""

import asyncio

import pytest

from conftest import BASIC_INFO, start_responder
from discovery.manager import DiscoveryEngine
from registry.host_table import HostTable
from registry.models import HostOrigin, Liveness


def _engine(host_table: HostTable, **overrides) -> DiscoveryEngine:
    config = {
        "discover_bind_address": "127.0.0.1:0",
        "discover_broadcast_addresses": ["127.0.0.1"],
        "discover_major_interval": 60000,
        "discover_minor_interval": 30,
    }
    config.update(overrides)
    return DiscoveryEngine(config, host_table)


class TestHandleDatagram:
    """Tests for inbound reply handling."""

    def test_new_unit_registered(self, host_table) -> None:
        engine = _engine(host_table)
        engine.handle_datagram(BASIC_INFO, ("192.168.1.40", 30050))

        record = host_table.find_by_unit_id("A4CBC0123456")
        assert record.origin is HostOrigin.DISCOVERED
        assert record.address == "192.168.1.40"
        assert record.name == "Living"
        assert record.liveness is Liveness.RESPONDING

    def test_same_unit_two_addresses_is_one_record(self, host_table) -> None:
        engine = _engine(host_table)
        engine.handle_datagram(BASIC_INFO, ("192.168.1.40", 30050))
        engine.handle_datagram(BASIC_INFO, ("192.168.1.41", 30050))

        assert len(host_table) == 1
        assert host_table.find_by_unit_id("A4CBC0123456").address == "192.168.1.41"

    def test_malformed_dropped(self, host_table) -> None:
        engine = _engine(host_table)
        engine.handle_datagram(b"ret=OK,type=aircon", ("192.168.1.40", 30050))
        engine.handle_datagram(b"\x00\x01garbage", ("192.168.1.40", 30050))

        assert len(host_table) == 0
        assert engine.stats["malformed"] == 2

    def test_own_broadcast_ignored(self, host_table) -> None:
        engine = _engine(host_table)
        engine.handle_datagram(b"DAIKIN_UDP/common/basic_info", ("192.168.1.2", 40000))
        assert engine.stats["replies"] == 0


class TestBurst:
    """Tests for broadcast bursts against a fake adaptor."""

    @pytest.mark.asyncio
    async def test_two_probes_one_record(self, host_table) -> None:
        transport, responder, port = await start_responder(lambda request: BASIC_INFO)
        engine = _engine(host_table, discover_port=port)
        try:
            result = await engine.run_burst()
        finally:
            await engine.stop()
            transport.close()

        assert result.error is None
        assert result.requests_sent == 2
        assert responder.requests == [b"DAIKIN_UDP/common/basic_info"] * 2
        assert result.replies == 2
        assert result.new_hosts == ["A4CBC0123456"]
        assert len(host_table) == 1

    @pytest.mark.asyncio
    async def test_reply_only_to_first_probe(self, host_table) -> None:
        answered = []

        def first_only(request: bytes):
            if answered:
                return None
            answered.append(request)
            return BASIC_INFO

        transport, _, port = await start_responder(first_only)
        engine = _engine(host_table, discover_port=port)
        try:
            result = await engine.run_burst()
        finally:
            await engine.stop()
            transport.close()

        assert result.replies == 1
        assert len(host_table) == 1

    @pytest.mark.asyncio
    async def test_bind_failure_skips_cycle(self, host_table) -> None:
        # TEST-NET-3 is never a local address
        engine = _engine(host_table, discover_bind_address="203.0.113.1:0")
        result = await engine.run_burst()

        assert result.skipped
        assert result.requests_sent == 0
        assert engine.stats["skipped_bursts"] == 1

    @pytest.mark.asyncio
    async def test_start_bursts_immediately(self, host_table) -> None:
        transport, responder, port = await start_responder(lambda request: BASIC_INFO)
        engine = _engine(host_table, discover_port=port)
        try:
            await engine.start()
            await asyncio.sleep(0.2)
        finally:
            await engine.stop()
            transport.close()

        # one burst only, the next one is a major interval away
        assert len(responder.requests) == 2
        assert host_table.find_by_unit_id("A4CBC0123456") is not None
