# app.py
"""
Flask application factory.

- Loads env/config
- Configures logging
- Initializes Firebase Admin (for token verification and Firestore)
- Enables CORS for /api/*
- Registers blueprints: Quiz scoring (/api/quiz), Quiz analytics (/api/analytics)
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from flask_cors import CORS

from .config import Config
from .routes.analytics import analytics_bp
from .services.firebase import init_firebase_admin
from .services.scoring_service.routes import scoring_bp

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------
def create_app(config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Tests patch token verification and never touch Firebase
    if not app.config.get("TESTING"):
        init_firebase_admin()

    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # --- Register blueprints ---
    app.register_blueprint(scoring_bp, url_prefix="/api/quiz")           # protected inside routes.py
    app.register_blueprint(analytics_bp, url_prefix="/api/analytics")

    # --- Health (public) ---
    @app.get("/api/health")
    def health():
        return jsonify({"ok": True, "service": "flask", "store": app.config.get("SCORING_STORE")})

    @app.get("/api/test/routes")
    def routes():
        rules = []
        for r in app.url_map.iter_rules():
            rules.append({
                "rule": r.rule,
                "methods": sorted(m for m in r.methods if m not in {"HEAD", "OPTIONS"})
            })
        return jsonify(sorted(rules, key=lambda x: x["rule"]))

    # --- JSON error handlers ---
    @app.errorhandler(400)
    def handle_400(err):
        return jsonify({"ok": False, "error": str(err)}), 400

    @app.errorhandler(404)
    def handle_404(err):
        return jsonify({"ok": False, "error": "Not found"}), 404

    @app.errorhandler(500)
    def handle_500(err):
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    logger.info("App created (store=%s)", app.config.get("SCORING_STORE"))
    return app
