"""
Daikin UDP protocol: codec and unicast query client
"""

from .codec import MalformedPacket, encode_discovery_request, encode_query_request, decode_discovery_reply, decode_query_reply
from .client import QueryClient
from .models import DiscoveryReply, QueryReply, QueryResult, QueryStatus

__all__ = ['MalformedPacket', 'encode_discovery_request', 'encode_query_request', 'decode_discovery_reply',
           'decode_query_reply', 'QueryClient', 'DiscoveryReply', 'QueryReply', 'QueryResult', 'QueryStatus']
