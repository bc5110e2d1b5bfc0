"""Prometheus metrics for reaction correlation and prompt lifecycle."""

from prometheus_client import Counter

# Inbound reaction outcomes
reaction_events_total = Counter(
    "matrix_prompt_reaction_events_total",
    "Total inbound events seen by the reaction handler by outcome",
    [
        "outcome"
    ],  # ignored, fetch_failed, not_annotated, malformed, unmatched_key, dispatched
)

# Prompt lifecycle operations
prompt_operations_total = Counter(
    "matrix_prompt_operations_total",
    "Total prompt lifecycle operations",
    ["operation", "result"],  # operation: post, open, complete, cancel
)

# Individual reaction redactions during a prompt sweep
prompt_redactions_total = Counter(
    "matrix_prompt_redactions_total",
    "Total reaction redactions issued while resolving prompts",
    ["result"],  # success, failure
)
