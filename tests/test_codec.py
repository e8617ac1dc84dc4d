"""Tests for the Daikin UDP codec."""

import pytest

from conftest import BASIC_INFO, CONTROL_INFO, SENSOR_INFO
from protocol.codec import (
    MalformedPacket,
    decode_discovery_reply,
    decode_query_reply,
    encode_discovery_request,
    encode_query_request,
    metric_value,
    parse_fields,
)


class TestEncode:
    """Tests for request encoding."""

    def test_discovery_marker(self) -> None:
        assert encode_discovery_request() == b"DAIKIN_UDP/common/basic_info"

    def test_query_groups(self) -> None:
        assert encode_query_request("sensor") == b"DAIKIN_UDP/aircon/get_sensor_info"
        assert encode_query_request("control") == b"DAIKIN_UDP/aircon/get_control_info"

    def test_unknown_group_rejected(self) -> None:
        with pytest.raises(ValueError):
            encode_query_request("firmware")


class TestParseFields:
    """Tests for the key=value grammar."""

    def test_values_may_contain_equals(self) -> None:
        assert parse_fields(b"ret=OK,adv=a=b") == {"ret": "OK", "adv": "a=b"}

    def test_empty_values_kept(self) -> None:
        assert parse_fields(b"ret=OK,id=,pw=")["id"] == ""

    @pytest.mark.parametrize("payload", [b"", b"   ", b"ret=OK,garbage", b"=OK", b"\xff\xfe"])
    def test_malformed(self, payload: bytes) -> None:
        with pytest.raises(MalformedPacket):
            parse_fields(payload)


class TestDiscoveryReply:
    """Tests for discovery reply decoding."""

    def test_basic_info(self) -> None:
        reply = decode_discovery_reply(BASIC_INFO, ("192.168.1.40", 30050))
        assert reply.unit_id == "A4CBC0123456"
        assert reply.address == "192.168.1.40"
        assert reply.port == 30050
        assert reply.name == "Living"

    def test_unknown_fields_tolerated(self) -> None:
        reply = decode_discovery_reply(BASIC_INFO + b",new_field=7", ("10.0.0.2", 30050))
        assert reply.extra["new_field"] == "7"

    def test_missing_mac_rejected(self) -> None:
        with pytest.raises(MalformedPacket):
            decode_discovery_reply(b"ret=OK,type=aircon,name=%41", ("10.0.0.2", 30050))

    def test_error_return_rejected(self) -> None:
        with pytest.raises(MalformedPacket):
            decode_discovery_reply(b"ret=PARAM NG,mac=A4CBC0123456", ("10.0.0.2", 30050))

    def test_own_request_is_malformed(self) -> None:
        with pytest.raises(MalformedPacket):
            decode_discovery_reply(encode_discovery_request(), ("10.0.0.1", 30050))

    def test_port_taken_from_sender(self) -> None:
        reply = decode_discovery_reply(b"ret=OK,mac=a4cbc0000001,port=x", ("10.0.0.3", 40123))
        assert reply.port == 40123
        assert reply.extra["port"] == "x"
        assert reply.unit_id == "A4CBC0000001"


class TestQueryReply:
    """Tests for query reply decoding."""

    def test_magic_must_come_first(self) -> None:
        with pytest.raises(MalformedPacket):
            decode_query_reply(b"htemp=21.5,ret=OK", "sensor")

    def test_sensor_fields(self) -> None:
        reply = decode_query_reply(SENSOR_INFO, "sensor")
        assert "ret" not in reply.fields
        assert reply.fields["htemp"] == "21.5"
        assert reply.groups == ("sensor",)

    def test_fan_rate_alias(self) -> None:
        assert decode_query_reply(CONTROL_INFO, "control").fields["f_rate"] == "1"

    def test_monitor_hex_fields(self) -> None:
        reply = decode_query_reply(b"ret=OK,fan=3235,trtmp=3231,ResetCount=4", "monitor")
        assert reply.fields["fan"] == "25"
        assert reply.fields["trtmp"] == "21"
        assert reply.fields["ResetCount"] == "4"

    def test_merge_keeps_later_groups(self) -> None:
        merged = decode_query_reply(CONTROL_INFO, "control").merge(decode_query_reply(SENSOR_INFO, "sensor"))
        assert merged.groups == ("control", "sensor")
        assert merged.fields["stemp"] == "22.0"
        assert merged.fields["otemp"] == "9.0"


class TestMetricValue:
    """Tests for value conversion."""

    def test_numbers(self) -> None:
        assert metric_value("21.5") == 21.5
        assert metric_value("-3") == -3.0

    def test_enumerations_stay_strings(self) -> None:
        assert metric_value("on") == "on"
        assert metric_value("--") == "--"
        assert metric_value("nan") == "nan"

    def test_firmware_version_not_a_number(self) -> None:
        assert metric_value("1_2_51") == "1_2_51"

    def test_special_float_words_stay_strings(self) -> None:
        assert metric_value("Infinity") == "Infinity"
        assert metric_value("-inf") == "-inf"
        assert metric_value("1e3") == "1e3"

    def test_leading_zero_ids_stay_strings(self) -> None:
        assert metric_value("001122334455") == "001122334455"
        assert metric_value("00") == "00"
        assert metric_value("0") == 0.0
        assert metric_value("0.5") == 0.5

    def test_basic_info_version_kept_verbatim(self) -> None:
        reply = decode_query_reply(BASIC_INFO, "basic")
        assert metric_value(reply.fields["ver"]) == "1_2_51"
        assert metric_value(reply.fields["cpv_minor"]) == "00"
