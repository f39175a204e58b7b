import logging
import os
from flask import Flask
from flask_cors import CORS

from .config import Config


def create_app(testing: bool = False, services=None):
    app = Flask(__name__)
    app.config["TESTING"] = testing

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # CORS configuration for development and production
    allowed_origins = [
        "http://localhost:5173",  # Local Vite dev server
        "http://localhost:5175",  # Alternate local port
    ]

    # Add production frontend URL if set
    frontend_url = os.getenv("FRONTEND_URL")
    if frontend_url:
        allowed_origins.append(frontend_url)

    # In development, allow all origins for easier testing
    if os.getenv("FLASK_ENV") == "development":
        CORS(app)
    else:
        CORS(app, origins=allowed_origins)

    if services is None and not testing:
        from .services.container import create_services

        services = create_services()
    if services is not None:
        app.extensions["services"] = services

    from .routes import bp as api_bp
    app.register_blueprint(api_bp, url_prefix="/api")

    return app
