"""Prometheus metrics."""

from prometheus_client import CollectorRegistry, Counter

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total HTTP requests answered with an error", registry=CUSTOM_REGISTRY)
LISTINGS_CREATED = Counter("listings_created_total", "Listings created", registry=CUSTOM_REGISTRY)
MATCHES_COMMITTED = Counter("matches_committed_total", "Matches committed", registry=CUSTOM_REGISTRY)
MATCH_CONFLICTS = Counter(
    "match_conflicts_total", "Match commits rejected because a listing was taken", registry=CUSTOM_REGISTRY
)
MESSAGES_APPENDED = Counter("messages_appended_total", "Chat messages stored", registry=CUSTOM_REGISTRY)
REALTIME_DELIVERED = Counter(
    "realtime_events_delivered_total", "Realtime events written to a socket", registry=CUSTOM_REGISTRY
)
REALTIME_DROPPED = Counter(
    "realtime_events_dropped_total", "Realtime events dropped before delivery", registry=CUSTOM_REGISTRY
)
