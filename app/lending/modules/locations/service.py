from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from sqlalchemy.orm import Session

from app.lending.modules.locations.models import RefCity, RefProvince, RefRegion

logger = logging.getLogger(__name__)

LEVELS = ("region", "province", "city")


@dataclass(frozen=True)
class LocationOption:
    id: str
    code: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def get_regions(s: Session) -> list[LocationOption]:
    rows = (
        s.query(RefRegion)
        .filter(RefRegion.is_active.is_(True))
        .order_by(RefRegion.region_name.asc())
        .all()
    )
    return [LocationOption(id=r.id, code=r.region_code, name=r.region_name) for r in rows]


def get_provinces_by_region(s: Session, region_id: str | None) -> list[LocationOption]:
    if not region_id:
        return []
    rows = (
        s.query(RefProvince)
        .filter(RefProvince.region_id == region_id, RefProvince.is_active.is_(True))
        .order_by(RefProvince.province_name.asc())
        .all()
    )
    return [LocationOption(id=p.id, code=p.province_code, name=p.province_name) for p in rows]


def get_cities_by_province(s: Session, province_id: str | None) -> list[LocationOption]:
    if not province_id:
        return []
    rows = (
        s.query(RefCity)
        .filter(RefCity.province_id == province_id, RefCity.is_active.is_(True))
        .order_by(RefCity.city_name.asc())
        .all()
    )
    return [LocationOption(id=c.id, code=c.city_code, name=c.city_name) for c in rows]


def get_region_by_id(s: Session, region_id: str | None) -> RefRegion | None:
    return s.get(RefRegion, region_id) if region_id else None


def get_province_by_id(s: Session, province_id: str | None) -> RefProvince | None:
    return s.get(RefProvince, province_id) if province_id else None


def get_city_by_id(s: Session, city_id: str | None) -> RefCity | None:
    return s.get(RefCity, city_id) if city_id else None


def validate_location_chain(
    s: Session, region_id: str | None, province_id: str | None, city_id: str | None
) -> dict[str, str]:
    """Field errors when the selected province/city do not belong to their parent."""
    errors: dict[str, str] = {}
    region = get_region_by_id(s, region_id)
    if region is None or not region.is_active:
        errors["region_id"] = "Please select a valid region"
        return errors
    province = get_province_by_id(s, province_id)
    if province is None or not province.is_active or province.region_id != region.id:
        errors["province_id"] = "Please select a valid province"
        return errors
    city = get_city_by_id(s, city_id)
    if city is None or not city.is_active or city.province_id != province.id:
        errors["city_id"] = "Please select a valid city/municipality"
    return errors


def _truthy(v: Any) -> bool:
    return str(v or "").strip().lower() in ("1", "true", "yes", "y")


def load_psgc_rows(s: Session, rows: Iterable[dict[str, Any]]) -> dict[str, int]:
    """
    Upsert PSGC reference rows keyed by psgc_code.

    Each row: level (region|province|city), psgc_code, code, name,
    parent_psgc_code (blank for regions), is_municipality (cities only).
    Rows must be ordered parents-first. Returns per-outcome counts.
    """
    stats = {"created": 0, "updated": 0, "unchanged": 0, "skipped": 0}
    models = {"region": RefRegion, "province": RefProvince, "city": RefCity}
    parents = {"province": RefRegion, "city": RefProvince}

    for raw in rows:
        level = (raw.get("level") or "").strip().lower()
        psgc_code = (raw.get("psgc_code") or "").strip()
        code = (raw.get("code") or "").strip()
        name = (raw.get("name") or "").strip()
        if level not in LEVELS or not psgc_code or not name:
            logger.warning("Skipping PSGC row with missing fields: %s", raw)
            stats["skipped"] += 1
            continue

        values: dict[str, Any] = {}
        if level in parents:
            parent_code = (raw.get("parent_psgc_code") or "").strip()
            parent_model = parents[level]
            parent = s.query(parent_model).filter(parent_model.psgc_code == parent_code).one_or_none()
            if parent is None:
                logger.warning("Skipping %s %s: parent %s not found", level, psgc_code, parent_code)
                stats["skipped"] += 1
                continue
            values["region_id" if level == "province" else "province_id"] = parent.id
        values[f"{level}_name"] = name
        values[f"{level}_code"] = code or psgc_code[:10]
        if level == "city":
            values["is_municipality"] = _truthy(raw.get("is_municipality"))

        model = models[level]
        existing = s.query(model).filter(model.psgc_code == psgc_code).one_or_none()
        if existing is None:
            s.add(model(psgc_code=psgc_code, is_active=True, **values))
            stats["created"] += 1
        else:
            changed = False
            for k, v in values.items():
                if getattr(existing, k) != v:
                    setattr(existing, k, v)
                    changed = True
            stats["updated" if changed else "unchanged"] += 1
        s.flush()
    return stats
