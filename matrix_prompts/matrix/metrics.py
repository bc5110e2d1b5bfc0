"""Prometheus metrics for Matrix authentication, connection and API calls."""

from prometheus_client import Counter, Gauge

# Authentication metrics
matrix_auth_total = Counter(
    "matrix_prompt_auth_total",
    "Total Matrix authentication attempts",
    ["method", "result"],  # method: session_restore, password; result: success, failure
)

# Connection status
matrix_connection_status = Gauge(
    "matrix_prompt_connection_status",
    "Matrix connection status (1=connected, 0=disconnected)",
)

# API call metrics
matrix_api_calls_total = Counter(
    "matrix_prompt_api_calls_total",
    "Total Matrix API calls by method",
    [
        "method",
        "result",
    ],  # method: get_event, send_reaction, redact_event, relations, send_message
)
