from dataclasses import dataclass
from opentelemetry import metrics


@dataclass
class ServerMetrics:
    counter_requests: metrics.Counter
    counter_errors: metrics.Counter
    histogram_latency: metrics.Histogram


def _get_server_metrics() -> ServerMetrics:
    meter = metrics.get_meter(__name__)
    return ServerMetrics(
        # dimensions: method, status_code
        counter_requests=meter.create_counter(
            name="http-test-server.requests",
            description="Number of requests handled by the test server",
            unit="requests",
        ),
        # dimensions: stage
        counter_errors=meter.create_counter(
            name="http-test-server.errors",
            description="Number of requests the test server failed to handle",
            unit="requests",
        ),
        # dimensions: method, status_code
        histogram_latency=meter.create_histogram(
            name="http-test-server.latency",
            description="Latency of handling the request",
            unit="seconds",
        ),
    )


server_metrics = _get_server_metrics()
