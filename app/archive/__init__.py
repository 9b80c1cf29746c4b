import logging

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect

from app.archive.config import load_config
from app.archive.db import init_db, teardown_db_session
from app.archive.errors import register_error_handlers
from app.archive.extensions import init_collaborators
from app.archive.operations import REQUIRED_SECRETS, check_storage
from app.archive.routes import bp as routes_bp
from app.archive.auth import load_current_principal
from app.archive.modules.records.api import bp as records_bp

_PUBLIC_PREFIXES = ("/health", "/healthz", "/storage/")
# still served when the schema is out of date, so directors can see why
_OPERATIONS_PATH = "/api/system/operations"

# Columns the code relies on; a DB missing any of them needs `alembic upgrade head`.
_EXPECTED_COLUMNS = {
    "documents": ("doc_uid", "doc_type", "version", "created_by", "legal_hold", "storage_path"),
    "audit_events": ("actor_user_id", "action", "doc_uid", "outcome", "reason", "client_ip", "user_agent"),
    "profiles": ("id", "role"),
}


def _check_production_config(app: Flask) -> None:
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
        raise RuntimeError("DATABASE_URL is required in production.")
    if str(app.config["DATABASE_URL"]).startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
    for key in REQUIRED_SECRETS:
        if not app.config.get(key):
            raise RuntimeError(f"{key} must be set in production.")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())

    _check_production_config(app)

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    collab = init_collaborators(app)

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            result = check_storage(collab.storage)
            if result["level"] == "ok":
                app.logger.info("Storage health check PASSED: %s", result["label"])
            else:
                app.logger.error("STORAGE CONFIG ERROR: %s: %s", result["label"], result["detail"])

    for key in REQUIRED_SECRETS:
        if not app.config.get(key):
            app.logger.warning("%s is not set; dependent endpoints will fail with 500/401.", key)

    app.register_blueprint(routes_bp)
    app.register_blueprint(records_bp, url_prefix="/api")
    register_error_handlers(app)

    @app.before_request
    def _load_principal():
        if request.path.startswith(_PUBLIC_PREFIXES):
            g.principal = None
            return None
        return load_current_principal()

    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): detect drift between code expectations and DB schema.
    app.config.setdefault("_schema_health_ok", True)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        try:
            engine = app.extensions.get("sqlalchemy_engine")
            if engine is None:
                raise RuntimeError("sqlalchemy_engine not initialized")
            insp = sa_inspect(engine)
            for table, columns in _EXPECTED_COLUMNS.items():
                if not insp.has_table(table):
                    continue
                present = {c["name"] for c in insp.get_columns(table)}
                missing.extend(f"{table}.{col}" for col in columns if col not in present)
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)

        if missing:
            app.config["_schema_health_missing"] = missing
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
        app.config["_schema_health_ok"] = not missing

    _run_schema_health_check()

    @app.before_request
    def _schema_health_guardrail():  # type: ignore[no-redef]
        if app.config.get("_schema_health_ok"):
            return None
        if request.path.startswith("/api") and request.path != _OPERATIONS_PATH:
            return jsonify({"error": "Database schema out of date.", "missing": app.config.get("_schema_health_missing") or []}), 500
        return None

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
