import logging
import os

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

# Models first: module models register their tables on Base at import time.
from app.cde import models  # noqa: F401
from app.cde.config import load_config
from app.cde.db import init_db, teardown_db_session
from app.cde.errors import CdeError
from app.cde.principal import load_principal
from app.cde.responses import cde_error_response
from app.cde.routes import bp as routes_bp
from app.cde.audit_api import bp as audit_bp
from app.cde.modules.documents.api import bp as documents_bp
from app.cde.modules.issues.api import bp as issues_bp
from app.cde.modules.mail.api import bp as mail_bp
from app.cde.modules.residents.api import bp as residents_bp
from app.cde.modules.workflows.api import bp as workflows_bp

API_PREFIX = "/api/cde"

# Tables the running code expects; a missing one means migrations were not applied.
REQUIRED_TABLES = (
    "tenants",
    "audit_events",
    "sequence_counters",
    "documents",
    "document_versions",
    "issues",
    "mail_items",
    "mail_responses",
    "residents",
    "workflows",
    "workflow_steps",
)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())

    logging.getLogger().setLevel(app.config.get("LOG_LEVEL") or "INFO")
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(audit_bp, url_prefix=API_PREFIX)
    app.register_blueprint(documents_bp, url_prefix=API_PREFIX)
    app.register_blueprint(workflows_bp, url_prefix=API_PREFIX)
    app.register_blueprint(mail_bp, url_prefix=API_PREFIX)
    app.register_blueprint(issues_bp, url_prefix=API_PREFIX)
    app.register_blueprint(residents_bp, url_prefix=API_PREFIX)

    def _load_principal_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.principal = None
            return None
        return load_principal()

    app.before_request(_load_principal_wrapper)
    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): checked once, on the first API request, so that
    # scripts and tests can create the schema after the app is built.
    app.config.setdefault("_schema_health_checked", False)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> list[str]:
        missing: list[str] = []
        try:
            engine = app.extensions.get("sqlalchemy_engine")
            if engine is None:
                raise RuntimeError("sqlalchemy_engine not initialized")
            insp = sa_inspect(engine)
            for table in REQUIRED_TABLES:
                if not insp.has_table(table):
                    missing.append(f"{table} (table)")
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
        return missing

    @app.before_request
    def _schema_health_guardrail():  # type: ignore[no-redef]
        if not request.path.startswith(API_PREFIX):
            return None
        if not app.config["_schema_health_checked"]:
            app.config["_schema_health_missing"] = _run_schema_health_check()
            app.config["_schema_health_checked"] = True
        missing = app.config["_schema_health_missing"]
        if missing:
            body = {"error": {"kind": "StorageError", "message": "Database schema is out of date.", "missing": missing}}
            return jsonify(body), 503
        return None

    @app.errorhandler(HTTPException)
    def _err_http(e):  # type: ignore[no-redef]
        if e.code == 401:
            app.logger.warning("Unauthenticated request path=%s request_id=%s", request.path, getattr(g, "request_id", None))
        return jsonify({"error": {"kind": e.name.replace(" ", ""), "message": e.description}}), e.code

    app.register_error_handler(CdeError, cde_error_response)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": {"kind": "InternalError", "message": "Internal server error"}}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
