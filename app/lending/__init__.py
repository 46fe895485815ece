import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session
from sqlalchemy import inspect as sa_inspect

from app.lending.admin import bp as admin_bp
from app.lending.auth import bp as auth_bp, guard_routes, load_current_user
from app.lending.config import load_config
from app.lending.constants import UNGUARDED_PREFIXES
from app.lending.db import init_db, teardown_db_session
from app.lending.identity import identity_provider_from_config
from app.lending.modules.applications.admin import bp as applications_bp
from app.lending.modules.loans.admin import bp as loans_bp
from app.lending.modules.locations.admin import bp as locations_bp
from app.lending.modules.receipts.admin import bp as receipts_bp
from app.lending.routes import bp as routes_bp

# Columns added by the wizard-state migration; older databases lack them.
WIZARD_COLUMNS = ("current_step", "step_data", "last_saved_at")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.lending.rbac import is_admin, user_has_permission
    from app.lending.security import ensure_csrf_token, validate_csrf
    from app.lending.users import primary_role

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        user = getattr(g, "current_user", None)

        def has_perm(key: str) -> bool:
            return user_has_permission(user, key)

        return {
            "has_perm": has_perm,
            "current_user_is_admin": is_admin(user),
            "current_role": primary_role(user) if user else None,
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "—"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.template_filter("peso")
    def _peso_filter(value) -> str:
        if value is None or value == "":
            return "—"
        return f"₱{float(value):,.2f}"

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Auth forms post before a session exists (login/register/logout).
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                if request.is_json:
                    return {"success": False, "message": "CSRF token missing or invalid."}, 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("SUPABASE_URL") or not app.config.get("SUPABASE_ANON_KEY"):
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY are required in production.")

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

    # Tests swap in a fake before the first request.
    app.extensions.setdefault("identity_provider", identity_provider_from_config(app.config))
    if not app.config.get("SUPABASE_URL"):
        app.logger.warning("SUPABASE_URL not set; sign-in will fail until the identity provider is configured.")

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(applications_bp, url_prefix="/applications")
    app.register_blueprint(locations_bp, url_prefix="/locations")
    app.register_blueprint(loans_bp, url_prefix="/admin/applications")
    app.register_blueprint(receipts_bp, url_prefix="/admin")

    app.before_request(load_current_user)
    app.before_request(guard_routes)
    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): detect drift between code expectations and DB schema.
    app.config.setdefault("_schema_health_ok", True)
    app.config.setdefault("_schema_health_missing", [])
    app.config.setdefault("_schema_health_logged", False)

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        try:
            engine = app.extensions.get("sqlalchemy_engine")
            if engine is None:
                raise RuntimeError("sqlalchemy_engine not initialized")
            insp = sa_inspect(engine)
            if insp.has_table("applications"):
                cols = {c["name"] for c in insp.get_columns("applications")}
                for col in WIZARD_COLUMNS:
                    if col not in cols:
                        missing.append(f"applications.{col}")
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)

        app.config["_schema_health_missing"] = missing
        app.config["_schema_health_ok"] = not missing
        if missing and not app.config.get("_schema_health_logged"):
            app.config["_schema_health_logged"] = True
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))

    _run_schema_health_check()
    app.extensions["schema_health_check"] = _run_schema_health_check

    @app.before_request
    def _schema_health_guardrail():
        if app.config.get("_schema_health_ok"):
            return None
        if getattr(g, "current_user", None) and not request.path.startswith(UNGUARDED_PREFIXES):
            return render_template("errors/schema_out_of_date.html", missing=app.config.get("_schema_health_missing") or []), 500
        return None

    @app.errorhandler(400)
    def _err_400(e):
        return render_template("errors/400.html", message=getattr(e, "description", None)), 400

    @app.errorhandler(403)
    def _err_403(e):
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
