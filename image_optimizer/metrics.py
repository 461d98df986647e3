from prometheus_client import Counter

# Outcomes of the rewrite engine, one sample per origin response
PASSTHROUGH = "passthrough"
BYPASSED = "bypassed"
REWRITTEN = "rewritten"
UNCHANGED = "unchanged"
FAILED = "failed"

responses_total = Counter(
    "optimizer_responses_total",
    "Origin responses handled by the rewrite engine",
    ["strategy", "outcome"],
)


def record_response(strategy: str, outcome: str) -> None:
    responses_total.labels(strategy=strategy, outcome=outcome).inc()
