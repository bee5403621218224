# backend/stockroom/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import store


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("stockroom").setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    store.init_app(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
