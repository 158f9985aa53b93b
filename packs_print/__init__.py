"""
Packs Print package

This module provides an application factory with minimal wiring:
- Configures logging via packs_print.core.logging
- Creates a Flask app exposing the JSON API and health endpoint
- Initializes CSRF protection for any form-based routes
- Registers blueprints (non-failing optional imports)
- Attaches a print service: the one passed in, or the process-wide service
"""

from __future__ import annotations

import importlib
import os
from collections.abc import Sequence
from typing import Any, Optional

from flask import Flask, g
from flask_wtf import CSRFProtect

csrf = CSRFProtect()


def _default_secret_key() -> str:
    return os.environ.get("PACKSPRINT_SECRET_KEY", "packsprint_dev_secret_key")


def _maybe_register_blueprint(app: Flask, import_path: str, attr: str) -> None:
    """
    Try to import a blueprint from import_path and register it if found.
    Missing modules/attributes are logged at debug level and skipped.
    """
    try:
        mod = importlib.import_module(import_path)
        bp = getattr(mod, attr, None)
        if bp is not None:
            app.register_blueprint(bp)
            app.logger.info(f"Registered blueprint: {import_path}.{attr}")
    except ImportError as e:
        app.logger.debug(f"Blueprint not registered ({import_path}.{attr}): {e}")


def _set_request_id() -> None:
    import uuid

    g.request_id = getattr(g, "request_id", uuid.uuid4().hex)


def create_app(
    config_overrides: Optional[dict] = None,
    blueprints: Optional[Sequence[tuple[str, str]]] = None,
    service: Optional[Any] = None,
    register_service: bool = True,
    configure_logs: bool = True,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: values to inject into app.config after defaults
    - blueprints: optional list of (import_path, attribute) tuples to register
    - service: a PrintService to attach (tests pass one built on a fake device)
    - register_service: if True and no service is given, ensure the
      process-wide service is created and started
    - configure_logs: if True, configure root logging

    Returns:
    - Flask app instance
    """
    app = Flask("packs_print")

    app.secret_key = _default_secret_key()
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("PACKSPRINT_MAX_CONTENT_LENGTH", 256 * 1024))
    # Keep template field order as submitted.
    app.json.sort_keys = False  # type: ignore[attr-defined]

    csrf.init_app(app)

    if configure_logs:
        from packs_print.core.logging import configure_logging

        configure_logging()
    app.logger.info("Packs Print app created")

    app.url_map.strict_slashes = False

    @app.before_request
    def _before_request():
        _set_request_id()

    default_blueprints = [
        ("packs_print.web.api", "api_bp"),  # versioned JSON API
        ("packs_print.web.health", "health_bp"),  # health endpoint
    ]
    for import_path, attr in blueprints or default_blueprints:
        _maybe_register_blueprint(app, import_path, attr)

    if service is None and register_service:
        from packs_print.printing.service import ensure_service

        service = ensure_service()
        app.logger.info("Print service ensured")
    if service is not None:
        app.extensions["packs_print"] = service

    if config_overrides:
        app.config.update(config_overrides)

    return app


__all__ = ["create_app", "csrf"]
