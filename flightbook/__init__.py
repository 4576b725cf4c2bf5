import os
import logging
import click
from logging.handlers import TimedRotatingFileHandler
from flask import Flask, jsonify, request, render_template
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager

db = SQLAlchemy()
login_manager = LoginManager()


def _configure_logging(app):
    app.logger.setLevel(logging.INFO)
    log_file = app.config.get("LOG_FILE")
    if log_file and not (app.debug or app.testing):
        handler = TimedRotatingFileHandler(log_file, when="midnight", interval=1, backupCount=7)
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        app.logger.addHandler(handler)
        logging.getLogger("flightbook").addHandler(handler)
    logging.getLogger("flightbook").setLevel(logging.INFO)


def _wants_json() -> bool:
    return request.path.startswith("/api/") or request.is_json


def create_app(config_object=None):
    app = Flask(
        __name__,
        template_folder="../templates",
        static_folder="../static",
    )

    if config_object is None:
        config_object = os.getenv("FLASK_CONFIG", "flightbook.config.DevelopmentConfig")
    app.config.from_object(config_object)

    _configure_logging(app)

    db.init_app(app)
    login_manager.init_app(app)
    login_manager.login_view = "auth.login"
    login_manager.login_message = "Please sign in to continue."
    login_manager.login_message_category = "info"

    from .storage import init_storage
    init_storage(app)

    from .formatting import register_filters
    register_filters(app)

    @app.errorhandler(404)
    def not_found(e):
        if _wants_json():
            return jsonify({"ok": False, "error": "Not Found"}), 404
        return render_template("error.html", code=404, message="Page not found."), 404

    @app.errorhandler(500)
    def internal_error(e):
        app.logger.error(f"Internal Error: {e}")
        if _wants_json():
            return jsonify({"ok": False, "error": "Internal Server Error"}), 500
        return render_template("error.html", code=500, message="Something went wrong."), 500

    # register blueprints
    from .auth import auth_bp
    app.register_blueprint(auth_bp)

    from .search import search_bp
    app.register_blueprint(search_bp)

    from .booking import booking_bp
    app.register_blueprint(booking_bp)

    from .my_bookings import bookings_bp
    app.register_blueprint(bookings_bp)

    from .profile import profile_bp
    app.register_blueprint(profile_bp)

    from .storage import storage_bp
    app.register_blueprint(storage_bp)

    @app.cli.command("purge-search-cache")
    def purge_search_cache():
        """Delete cached searches older than SEARCH_CACHE_TTL."""
        from .search_cache import purge_expired_searches
        click.echo(f"Purged {purge_expired_searches()} expired cached searches")

    # create tables
    with app.app_context():
        from . import models
        db.create_all()

    return app
