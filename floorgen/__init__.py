"""Flask application and core extensions setup.

Wires the Flask app and SQLAlchemy together and registers the layout API
blueprint. Configuration is sourced from environment variables (optionally
via a ``.env`` file) with defaults suitable for development. A local
``instance/`` directory holds the SQLite database and the log file.
"""

import logging
import os
import uuid
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

__version__ = "0.3.0"

# Load .env if present so `DATABASE_URL`, `FLOORGEN_*` etc. can be supplied
# without exporting shell variables during development.
load_dotenv()

app = Flask(__name__, instance_relative_config=True)

try:
    os.makedirs(app.instance_path, exist_ok=True)
except OSError:
    # Read-only installs still work with an explicit DATABASE_URL
    pass

secret_key = os.getenv("SECRET_KEY", "dev-secret-change-me")
database_url = os.getenv("DATABASE_URL")
if not database_url:
    db_path = Path(app.instance_path) / "floorgen.db"
    # Use POSIX path for SQLAlchemy URI compatibility across OS
    database_url = f"sqlite:///{db_path.as_posix()}"


def _time_budget_from_env():
    raw = os.getenv("FLOORGEN_TIME_BUDGET_MS", "").strip()
    return int(raw) if raw.isdigit() and int(raw) > 0 else None


app.config.update(
    SECRET_KEY=secret_key,
    SQLALCHEMY_DATABASE_URI=database_url,
    SQLALCHEMY_TRACK_MODIFICATIONS=False,
    # Layout generation flags
    FLOORGEN_ENABLE_GENERATION_METRICS=bool(os.getenv("FLOORGEN_ENABLE_GENERATION_METRICS", "1") == "1"),
    FLOORGEN_TIME_BUDGET_MS=_time_budget_from_env(),
    FLOORGEN_DISABLE_CACHE=bool(os.getenv("FLOORGEN_DISABLE_CACHE", "0") == "1"),
)

engine_opts = {}
if database_url.startswith("sqlite:///"):
    engine_opts["connect_args"] = {
        "timeout": 10,  # busy timeout (seconds) for sqlite
        "check_same_thread": False,
    }
db = SQLAlchemy(app, session_options={"expire_on_commit": False}, engine_options=engine_opts)

# Register models and HTTP blueprints once app/db exist
from floorgen import models  # noqa: F401,E402
from floorgen.routes.layout_api import bp_layout  # noqa: E402

app.register_blueprint(bp_layout)

# Route map debug output (development aid). Suppress with FLOORGEN_SUPPRESS_ROUTE_MAP=1
if os.getenv("FLOORGEN_SUPPRESS_ROUTE_MAP") not in ("1", "true", "yes"):
    print("Registered routes:")
    print(app.url_map)


def create_app():
    """Return the Flask app instance with database tables created."""
    with app.app_context():
        db.create_all()
    return app


@app.errorhandler(500)
def internal_error(e):
    error_id = uuid.uuid4().hex[:8]
    logging.exception("Unhandled exception (id=%s)", error_id)
    return jsonify({"error": "internal server error", "error_id": error_id}), 500
