"""
FaceWatch - Main Application
Live webcam face recognition with a browser status dashboard
"""

import os
import logging
from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

logger = logging.getLogger(__name__)


def configure_logging(level=Config.LOG_LEVEL, log_file=Config.LOG_FILE):
    """Log to stdout and to the configured file"""
    handlers = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def create_app(config=Config, recognition=None, autostart=None):
    """
    Build the Flask app.

    Args:
        config: Config-like object
        recognition: RecognitionService to expose (built from config if omitted)
        autostart: start models/camera/loop in the background (default: config.AUTOSTART)
    """
    from services.app_state import AppState
    from services.recognition_service import RecognitionService
    from services.stream_handler import StreamHandler, make_publisher

    app = Flask(__name__)
    app.config.from_object(config)
    app.url_map.strict_slashes = False

    # Initialize extensions
    CORS(app, resources={r"/*": {"origins": "*"}})
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')
    app.socketio = socketio

    if recognition is None:
        recognition = RecognitionService(config, state=AppState(), publisher=make_publisher(socketio))
    app.recognition = recognition

    socketio.on_namespace(StreamHandler(recognition.state, '/stream'))

    # Register blueprints
    from api.status import status_bp
    app.register_blueprint(status_bp, url_prefix='/api')

    # Dashboard
    @app.route('/')
    def index_page():
        return send_from_directory('templates', 'index.html')

    # API root
    @app.route('/api')
    def api_info():
        return jsonify({
            "message": "FaceWatch API",
            "version": "1.0.0",
            "status": "online"
        })

    # Health check
    @app.route('/health')
    def health():
        snapshot = app.recognition.state.snapshot()
        if snapshot['error']:
            return jsonify({
                "status": "unhealthy",
                "error": snapshot['error'],
            }), 503
        return jsonify({
            "status": "healthy",
            "running": snapshot['running'],
            "models": snapshot['models'],
        })

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    if config.AUTOSTART if autostart is None else autostart:
        recognition.start()

    return app


if __name__ == '__main__':
    configure_logging()
    logger.info("Starting FaceWatch...")
    logger.info(f"Server running on {Config.HOST}:{Config.PORT}")

    app = create_app(Config)
    try:
        # Run with SocketIO
        app.socketio.run(
            app,
            host=Config.HOST,
            port=Config.PORT,
            debug=False,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    finally:
        app.recognition.stop()
