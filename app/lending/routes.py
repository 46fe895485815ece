from flask import Blueprint, g, render_template

from app.lending.db import db_session
from app.lending.modules.applications.service import find_by_user, find_drafts_by_user
from app.lending.rbac import require_permission
from app.lending.users import primary_role

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return render_template("public/index.html")


@bp.get("/dashboard")
@require_permission("applications.view")
def dashboard():
    s = db_session()
    user = g.current_user
    return render_template(
        "dashboard.html",
        role=primary_role(user),
        drafts=find_drafts_by_user(s, user.id),
        recent=find_by_user(s, user.id)[:5],
    )


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load-balancer probes. No DB access.
    """
    return "ok", 200
