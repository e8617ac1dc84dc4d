"""
Self-instrumentation for the exporter's own UDP traffic
"""

from prometheus_client import Counter, Histogram

UDP_REQUESTS = Counter(
    "daikin_udp_requests_total",
    "Number of UDP query requests made to Daikin adaptors",
    ["host", "group"],
)

UDP_ERRORS = Counter(
    "daikin_udp_request_errors_total",
    "Number of UDP query errors from Daikin adaptors",
    ["host", "group", "error_type"],
)

UDP_DURATIONS = Histogram(
    "daikin_udp_request_duration_seconds",
    "UDP query round trip durations",
    ["host", "group"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

DISCOVER_REQUESTS = Counter(
    "daikin_udp_discover_requests_total",
    "Number of UDP discover requests broadcast to Daikin adaptors",
    ["address"],
)

DISCOVER_RESPONSES = Counter(
    "daikin_udp_discover_responses_total",
    "Number of UDP discover responses read from Daikin adaptors",
    ["host"],
)
