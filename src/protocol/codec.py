"""
Daikin UDP protocol codec
Encodes discovery/query requests and decodes the comma separated key=value replies
"""

import logging
import re
from typing import Dict, Tuple
from urllib.parse import unquote

from .models import DiscoveryReply, QueryReply, MetricValue

logger = logging.getLogger(__name__)

DEFAULT_PORT = 30050
REQUEST_PREFIX = "DAIKIN_UDP/"
DISCOVERY_PATH = "common/basic_info"

# Query group name -> adaptor path
QUERY_GROUPS: Dict[str, str] = {
    "basic": "common/basic_info",
    "control": "aircon/get_control_info",
    "sensor": "aircon/get_sensor_info",
    "week_power": "aircon/get_week_power",
    "monitor": "aircon/get_monitordata",
}

# Not answered by every firmware revision
OPTIONAL_QUERY_GROUPS = ("week_power", "monitor")

MAGIC_FIELD = "ret"
MAGIC_OK = "OK"

# get_monitordata reports these as hex encoded ASCII ("3235" -> "25")
HEX_ENCODED_FIELDS = ("fan", "rawrtmp", "trtmp", "fangl", "hetmp")

FAN_RATE_ALIASES = {"A": "1", "B": "2"}

# No exponents, separators or leading zeros: "1_2_51", "Infinity" and MAC-like ids stay strings
NUMBER_PATTERN = re.compile(r"-?(0|[1-9][0-9]*)(\.[0-9]+)?")


class MalformedPacket(ValueError):
    """Payload does not follow the key=value grammar or misses mandatory fields"""


def encode_discovery_request() -> bytes:
    """Discovery broadcast payload"""
    return (REQUEST_PREFIX + DISCOVERY_PATH).encode("ascii")


def encode_query_request(group: str) -> bytes:
    """Unicast request payload for one query group"""
    try:
        path = QUERY_GROUPS[group]
    except KeyError:
        raise ValueError(f"Unknown query group: {group}")
    return (REQUEST_PREFIX + path).encode("ascii")


def parse_fields(payload: bytes) -> Dict[str, str]:
    """
    Split a reply into an ordered field mapping.
    Values may themselves contain '=' (only the first one separates key and value).
    """
    try:
        text = payload.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise MalformedPacket(f"Payload is not UTF-8: {e}")

    if not text:
        raise MalformedPacket("Empty payload")

    fields: Dict[str, str] = {}
    for segment in text.split(","):
        if "=" not in segment:
            raise MalformedPacket(f"Segment without '=': {segment!r}")
        key, value = segment.split("=", 1)
        key = key.strip()
        if not key:
            raise MalformedPacket(f"Segment with empty key: {segment!r}")
        fields[key] = value.strip()

    return fields


def _check_magic(fields: Dict[str, str]) -> None:
    first_key = next(iter(fields))
    if first_key != MAGIC_FIELD:
        raise MalformedPacket(f"Reply does not start with '{MAGIC_FIELD}=' (got '{first_key}')")
    if fields[MAGIC_FIELD] != MAGIC_OK:
        raise MalformedPacket(f"Unit reported {MAGIC_FIELD}={fields[MAGIC_FIELD]}")


def decode_name(raw: str) -> str:
    """Adaptor names are percent encoded ("%4c%69%76%69%6e%67" -> "Living")"""
    return unquote(raw)


def decode_hex(raw: str) -> str:
    """Decode hex encoded ASCII, leaving undecodable values untouched"""
    try:
        return bytes.fromhex(raw).decode("ascii")
    except ValueError:
        return raw


def decode_discovery_reply(payload: bytes, sender: Tuple[str, int]) -> DiscoveryReply:
    """Decode a basic_info reply to a discovery broadcast"""
    fields = parse_fields(payload)
    _check_magic(fields)

    unit_id = fields.get("mac", "")
    if not unit_id:
        raise MalformedPacket(f"Discovery reply from {sender[0]} has no mac field")

    name = decode_name(fields["name"]) if fields.get("name") else None

    known = {MAGIC_FIELD, "mac", "name"}
    extra = {k: v for k, v in fields.items() if k not in known}

    return DiscoveryReply(
        unit_id=unit_id.upper(),
        address=sender[0],
        # queries go back to the port the unit answered from
        port=sender[1] or DEFAULT_PORT,
        name=name,
        extra=extra,
    )


def decode_query_reply(payload: bytes, group: str = "") -> QueryReply:
    """Decode a query reply, normalising the encoded values"""
    fields = parse_fields(payload)
    _check_magic(fields)
    del fields[MAGIC_FIELD]

    if "name" in fields:
        fields["name"] = decode_name(fields["name"])
    if fields.get("f_rate") in FAN_RATE_ALIASES:
        fields["f_rate"] = FAN_RATE_ALIASES[fields["f_rate"]]
    if group == "monitor":
        for key in HEX_ENCODED_FIELDS:
            if key in fields:
                fields[key] = decode_hex(fields[key])

    return QueryReply(fields=fields, groups=(group,) if group else ())


def metric_value(raw: str) -> MetricValue:
    """Plain decimal strings become floats, everything else is kept as reported"""
    if NUMBER_PATTERN.fullmatch(raw):
        return float(raw)
    return raw
