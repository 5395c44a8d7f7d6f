"""Flask application serving the metrics endpoint."""

import logging

from flask import Flask, Response

from ..core.errors import AcquisitionError

LANDING_PAGE = """<!DOCTYPE html>
<html>
<head><title>Kopia Exporter</title></head>
<body>
<h1>Kopia Exporter</h1>
<p>Prometheus metrics for kopia backup snapshots.</p>
<p><a href="/metrics">/metrics</a></p>
</body>
</html>
"""

logger = logging.getLogger(__name__)


def create_app(exporter) -> Flask:
    """Create the Flask application for a KopiaExporter."""
    app = Flask(__name__)

    @app.route("/", methods=["GET"])
    def index():
        return Response(LANDING_PAGE, mimetype="text/html")

    @app.route("/metrics", methods=["GET"])
    def metrics():
        try:
            body = exporter.render_metrics()
        except AcquisitionError as e:
            logger.error(f"Metrics acquisition failed: {e}")
            return Response(f"Error acquiring kopia metrics: {e}\n", status=500, mimetype="text/plain")
        return Response(body, status=200, headers={"Content-Type": exporter.reporter.content_type})

    return app
