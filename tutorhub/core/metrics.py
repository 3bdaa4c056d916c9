from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

CHECKOUT_SESSIONS = Counter(
    "checkout_sessions_total",
    "Checkout sessions requested from the payment provider",
    ["result"],
)

WEBHOOK_EVENTS = Counter(
    "payment_webhook_events_total",
    "Payment webhook deliveries by event type and verification result",
    ["event_type", "result"],
)

FULFILLMENT_OUTCOMES = Counter(
    "booking_fulfillment_outcomes_total",
    "Booking fulfillment attempts by outcome",
    ["outcome"],
)

FULFILLMENT_STEP_FAILURES = Counter(
    "booking_fulfillment_step_failures_total",
    "Non-fatal fulfillment step failures requiring manual remediation",
    ["step"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
