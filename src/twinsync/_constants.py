"""Internal constants shared across the library."""

#: State keys that change on every report and never count as a change.
IGNORED_STATE_KEYS: frozenset[str] = frozenset({"lastupdated"})

#: Graph store statuses worth retrying: timeout, throttling, server/gateway errors.
RETRIABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

DEFAULT_POLL_INTERVAL_MS = 10_000
DEFAULT_EVENT_CHANNEL = "hueEvents"
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_BASE_MS = 500
DEFAULT_RETRY_MAX_MS = 8_000
DEFAULT_DATA_DIR = "/app/data"
DEFAULT_GRAPH_API_VERSION = "2023-10-31"

STATE_FILE_NAME = "hue-monitor-state.json"
