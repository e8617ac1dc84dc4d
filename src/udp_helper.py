# UDP Helper for Daikin adaptor connections
# Datagram endpoint creation and address parsing shared by discovery and queries

import asyncio
import logging
import socket
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

def parse_bind_address(value: str, default_port: int = 0) -> Tuple[str, int]:
    """
    Split "host:port" into a tuple. A bare host gets default_port.
    IPv6 literals must be bracketed ("[::]:9150").
    """
    value = value.strip()
    if value.startswith('['):
        host, _, rest = value[1:].partition(']')
        port = rest.lstrip(':')
    elif value.count(':') == 1:
        host, port = value.split(':')
    else:
        host, port = value, ''

    if not host:
        raise ValueError(f"Missing host in address: {value!r}")
    if port == '':
        return host, default_port
    if not port.isdigit() or int(port) > 65535:
        raise ValueError(f"Invalid port in address: {value!r}")
    return host, int(port)

async def create_udp_endpoint(
    protocol_factory: Callable[[], asyncio.DatagramProtocol],
    local_addr: Tuple[str, int] = ('0.0.0.0', 0),
    allow_broadcast: bool = False
) -> Tuple[asyncio.DatagramTransport, asyncio.DatagramProtocol]:
    """
    Create a datagram endpoint for talking to adaptors.
    Raises OSError when the local network stack refuses the bind.
    """
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        protocol_factory,
        local_addr=local_addr,
        family=socket.AF_INET,
        allow_broadcast=allow_broadcast
    )
    logger.debug(f"UDP endpoint open on {transport.get_extra_info('sockname')} (broadcast={allow_broadcast})")
    return transport, protocol

async def resolve_ipv4(host: str) -> Optional[str]:
    """Resolve a hostname or literal to an IPv4 address string, None if unresolvable"""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as e:
        # UnicodeError: IDNA encoding rejects labels over 63 characters
        logger.debug(f"Could not resolve {host}: {e}")
        return None
    if not infos:
        return None
    return infos[0][4][0]
