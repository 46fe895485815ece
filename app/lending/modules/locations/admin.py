from __future__ import annotations

from flask import Blueprint, jsonify

from app.lending.db import db_session
from app.lending.modules.locations.service import get_cities_by_province, get_provinces_by_region, get_regions
from app.lending.rbac import require_permission

bp = Blueprint("locations", __name__)


@bp.get("/regions")
@require_permission("applications.view")
def regions():
    s = db_session()
    return jsonify([o.to_dict() for o in get_regions(s)])


@bp.get("/regions/<region_id>/provinces")
@require_permission("applications.view")
def provinces(region_id: str):
    s = db_session()
    return jsonify([o.to_dict() for o in get_provinces_by_region(s, region_id)])


@bp.get("/provinces/<province_id>/cities")
@require_permission("applications.view")
def cities(province_id: str):
    s = db_session()
    return jsonify([o.to_dict() for o in get_cities_by_province(s, province_id)])
