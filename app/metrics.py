from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from flask import Response, request
import time

# API Metrics
api_request_duration_seconds = Histogram(
    "mapvault_api_request_duration_seconds", "API request duration", ["endpoint", "method"]
)

api_requests_total = Counter("mapvault_api_requests_total", "Total API requests", ["endpoint", "method", "status_code"])

# Upload Metrics
MAP_UPLOADS = Counter("mapvault_map_uploads_total", "Map upload attempts by outcome", ["status"])

MAP_UPLOAD_DURATION = Histogram(
    "mapvault_map_upload_duration_seconds",
    "Time spent processing a map upload",
    buckets=(0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60),
)

ACTIVE_UPLOADS = Gauge("mapvault_active_uploads", "Number of map uploads in progress")

# Database Metrics
db_maps_total = Gauge("mapvault_maps_total", "Total number of maps")
db_map_versions_total = Gauge("mapvault_map_versions_total", "Total number of map versions")


def init_metrics(app):
    @app.route("/api/metrics")
    def metrics():
        update_db_metrics()
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

    @app.before_request
    def before_request():
        request.start_time = time.time()

    @app.after_request
    def after_request(response):
        duration = time.time() - getattr(request, "start_time", time.time())
        api_request_duration_seconds.labels(endpoint=request.endpoint or "unknown", method=request.method).observe(
            duration
        )
        api_requests_total.labels(
            endpoint=request.endpoint or "unknown", method=request.method, status_code=response.status_code
        ).inc()
        return response

    app.logger.info("Prometheus metrics initialized at /api/metrics")


def update_db_metrics():
    """Update database-related metrics."""
    from models import Map, MapVersion

    db_maps_total.set(Map.query.count())
    db_map_versions_total.set(MapVersion.query.count())
