"""Web interface exposing session status and rollups over HTTP."""

from flask import Flask, request, jsonify
from flask_cors import CORS
import logging
import os

from config.settings import settings
from src.services.scheduler import start_scheduler, stop_scheduler
from src.webhooks import handle_evidence_change_webhook


logger = logging.getLogger(__name__)

app = Flask(__name__)

# Configure CORS for development and production
if os.getenv('FLASK_ENV') == 'production':
    # Production: only allow the dashboard domain
    cors_origins = [settings.web.base_url]
    logger.info(f"Production CORS: {cors_origins}")
else:
    # Development: allow localhost on the usual dashboard ports
    frontend_port = int(os.getenv('FRONTEND_PORT', 3000))
    cors_origins = [
        f"http://localhost:{frontend_port}",
        "http://localhost:3000",
        settings.web.base_url,
    ]
    logger.info(f"Development CORS: {cors_origins}")

CORS(app, origins=cors_origins, supports_credentials=True,
     allow_headers=['Content-Type', 'Authorization', 'X-Hub-Signature'],
     methods=['GET', 'POST', 'OPTIONS'])

# Register route blueprints
from src.routes.health import health_bp
from src.routes.sessions import sessions_bp

app.register_blueprint(health_bp)
app.register_blueprint(sessions_bp)


@app.route('/api/webhooks/evidence-change', methods=['POST'])
def evidence_change_webhook():
    """
    Evidence store change notification endpoint.

    Re-evaluates the affected worker-day and market, then refreshes the
    status hint cache.
    """
    return handle_evidence_change_webhook()

logger.info("Evidence change webhook endpoint registered at /api/webhooks/evidence-change")


@app.errorhandler(404)
def not_found(e):
    """Return JSON for unknown API routes."""
    return jsonify({'success': False, 'error': f'Not found: {request.path}'}), 404


if __name__ == '__main__':
    logging.basicConfig(
        level=getattr(logging, settings.agent.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Only start the monitor scheduler when running the dev server directly
    logger.info("Starting live market monitor scheduler (dev mode)...")
    start_scheduler()

    import atexit
    atexit.register(stop_scheduler)

    app.run(debug=settings.web.debug, host=settings.web.host, port=settings.web.port)
