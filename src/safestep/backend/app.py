"""SafeStep Flask Backend Application.

This module provides the Flask application for the SafeStep device service,
including REST API endpoints for sensors, sessions and settings, and
WebSocket pushes of live status, alerts and walking transitions.
"""

import logging
from datetime import datetime
from typing import Optional

from flask import Flask, jsonify, request
from flask_socketio import SocketIO, emit
from flask_cors import CORS

from .config import Config
from .context import AppContext
from .notifications import AlertChannel

logger = logging.getLogger(__name__)


class SocketIOAlertChannel(AlertChannel):
    """Delivers alerts through another channel and pushes them to WebSocket clients."""

    def __init__(self, socketio: SocketIO, inner: AlertChannel):
        self.socketio = socketio
        self.inner = inner

    def deliver(self, title: str, body: str):
        self.inner.deliver(title, body)
        self.socketio.emit('alert', {
            'title': title,
            'body': body,
            'timestamp': datetime.utcnow().isoformat() + 'Z'
        })


def configure_logging(level: str = Config.LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
        ]
    )


def create_app(context: Optional[AppContext] = None, config=Config) -> Flask:
    """Create the Flask application.

    Args:
        context: Application context (built from config if not given)
        config: Configuration class

    Returns:
        Flask app; its SocketIO instance is in app.extensions['socketio']
    """
    context = context or AppContext(config)

    app = Flask(__name__)
    app.config.from_object(config)
    app.secret_key = config.SECRET_KEY
    app.extensions['safestep'] = context

    CORS(app)
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

    # Alerts and status reach WebSocket clients as well as the log
    context.gate.channel = SocketIOAlertChannel(socketio, context.gate.channel)
    context.add_status_listener(lambda status: socketio.emit('status', status))
    context.detector.add_listener(lambda transition: socketio.emit('walking', {
        'transition': transition.value,
        'timestamp': datetime.utcnow().isoformat() + 'Z'
    }))

    from .routes import activity, sensors, session, settings
    app.register_blueprint(sensors.bp)
    app.register_blueprint(session.bp)
    app.register_blueprint(activity.bp)
    app.register_blueprint(settings.bp)

    @app.before_request
    def log_request():
        logger.debug(f"Request: {request.method} {request.path} - {request.remote_addr}")

    @app.after_request
    def log_response(response):
        logger.debug(f"Response: {request.method} {request.path} - {response.status_code}")
        return response

    @app.route('/health')
    def health():
        """Get system health status."""
        return jsonify(context.status().to_dict())

    @socketio.on('connect')
    def handle_connect():
        emit('status', context.status().to_dict())

    return app


def main():
    configure_logging(Config.LOG_LEVEL)

    context = AppContext(Config)
    app = create_app(context)
    socketio = app.extensions['socketio']

    context.start()
    try:
        socketio.run(
            app,
            host=Config.HOST,
            port=Config.PORT,
            debug=Config.DEBUG,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    finally:
        context.shutdown()


if __name__ == '__main__':
    main()
