"""Story reader backend - Flask application."""

import logging
import threading
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from .. import __version__
from ..config import Config, get_config
from ..db.sqlite import BookNotFoundError, Database, UserNotFoundError
from ..reading.progress import InvalidProgressError, ProgressTracker
from ..reading.session import SessionTracker
from ..settings.manager import SettingsValidationError, SystemSettingsManager
from .auth import AuthError
from .guards import EXTENSION_KEY, MaintenanceModeError, ReaderServices
from .routes import BLUEPRINTS

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str):
    return jsonify({"success": False, "message": message}), status_code


def _validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))


def register_error_handlers(app: Flask) -> None:
    """Map exceptions to ``{success: false, message}`` bodies."""

    @app.errorhandler(HTTPException)
    def http_error(exc: HTTPException):
        if exc.code is not None and exc.code < 400:
            return exc
        return _error(exc.code or 500, exc.description)

    @app.errorhandler(ValidationError)
    def validation_error(exc: ValidationError):
        return _error(400, _validation_message(exc))

    @app.errorhandler(AuthError)
    def auth_error(exc: AuthError):
        return _error(401, str(exc))

    @app.errorhandler(BookNotFoundError)
    @app.errorhandler(UserNotFoundError)
    def not_found(exc: Exception):
        return _error(404, str(exc))

    @app.errorhandler(InvalidProgressError)
    @app.errorhandler(SettingsValidationError)
    def bad_value(exc: Exception):
        return _error(400, str(exc))

    @app.errorhandler(MaintenanceModeError)
    def maintenance(exc: MaintenanceModeError):
        return _error(503, str(exc))

    @app.errorhandler(Exception)
    def unexpected(exc: Exception):
        logger.error("Unhandled error", exc_info=exc)
        return _error(500, "Internal server error")


class OrphanReaper(threading.Thread):
    """Background thread that closes orphaned sessions every ``interval`` seconds."""

    def __init__(self, tracker: SessionTracker, interval: float):
        super().__init__(name="orphan-reaper", daemon=True)
        self.tracker = tracker
        self.interval = interval
        self._halt = threading.Event()

    def run(self) -> None:
        while not self._halt.wait(self.interval):
            try:
                self.tracker.reap_orphaned_sessions()
            except Exception:
                logger.exception("Orphaned session sweep failed")

    def stop(self) -> None:
        self._halt.set()


def create_app(db: Optional[Database] = None, config: Optional[Config] = None) -> Flask:
    """Build the API application.

    Creates the tables and closes any sessions orphaned while the server
    was down before the first request is served.

    Args:
        db: Database to serve (default: from config)
        config: Application config (default: from environment)
    """
    config = config or get_config()

    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info("Starting story reader backend %s", __version__)
    for problem in config.validate():
        logger.warning("Config: %s", problem)

    db = db or Database(str(config.db_path))
    db.create_tables()

    reader_services = ReaderServices(
        config=config,
        db=db,
        session_tracker=SessionTracker(db, max_session_seconds=config.session_max_seconds),
        progress_tracker=ProgressTracker(db),
        settings_manager=SystemSettingsManager(db, cache_ttl=config.settings_cache_ttl),
    )
    reaped = reader_services.session_tracker.reap_orphaned_sessions()
    logger.info("Database ready at %s (%d orphaned session(s) reaped)", db.db_path, reaped)

    app = Flask(__name__)
    app.extensions[EXTENSION_KEY] = reader_services
    CORS(app, origins=config.cors_origins, supports_credentials=True)

    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)

    register_error_handlers(app)

    @app.route("/api/health", methods=["GET"])
    def health_check():
        """Health check endpoint."""
        return jsonify({"success": True, "status": "healthy", "version": __version__})

    return app


def run_server(
    app: Flask,
    host: str = "0.0.0.0",
    port: int = 8000,
    debug: bool = False,
    reap_interval: float = 600,
) -> None:
    """Serve the app with the orphan sweep running alongside it.

    Args:
        app: Application from create_app
        host: Bind address
        port: Port to listen on
        debug: Enable Flask debug mode
        reap_interval: Seconds between orphaned session sweeps
    """
    reaper = OrphanReaper(app.extensions[EXTENSION_KEY].session_tracker, reap_interval)
    reaper.start()
    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False)
    finally:
        reaper.stop()
