"""
Sequential document numbers of the form <PREFIX>-<YYYY>-<NNNNNN>.

The next number is the highest existing suffix for the year + 1. That read is not
atomic, so callers rely on the column's unique constraint and retry the
insert on IntegrityError (see applications.service.create_draft).
"""
from __future__ import annotations

import logging
import time
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import InstrumentedAttribute, Session

from app.lending.errors import NumberAllocationError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
SEQUENCE_WIDTH = 6


def _parse_sequence(number: str | None) -> int | None:
    if not number:
        return None
    parts = number.split("-")
    if len(parts) != 3 or not parts[2]:
        return None
    try:
        return int(parts[2])
    except ValueError:
        return None


def format_number(prefix: str, year: int, seq: int) -> str:
    return f"{prefix}-{year}-{seq:0{SEQUENCE_WIDTH}d}"


def next_sequence_number(
    s: Session,
    column: InstrumentedAttribute,
    prefix: str,
    *,
    year: int | None = None,
    sleep=time.sleep,
) -> str:
    """
    Allocate the next free `<prefix>-<year>-<seq>` value for `column`.
    Raises NumberAllocationError after MAX_ATTEMPTS.
    """
    year = year or datetime.now().year
    like = f"{prefix}-{year}-%"
    offset = 0
    attempt = 0
    while attempt < MAX_ATTEMPTS:
        try:
            # Longest first: "-1000000" must outrank "-999999" once the width overflows.
            last = s.execute(
                select(column)
                .where(column.like(like))
                .order_by(func.length(column).desc(), column.desc())
                .limit(1)
            ).scalar()
            seq = (_parse_sequence(last) or 0) + 1 + offset
            candidate = format_number(prefix, year, seq)
            exists = s.execute(select(column).where(column == candidate).limit(1)).first()
            if not exists:
                return candidate
            offset += 1
            attempt += 1
        except SQLAlchemyError as e:
            attempt += 1
            logger.error("Error generating %s number (attempt %s): %s", prefix, attempt, e)
            if attempt >= MAX_ATTEMPTS:
                raise NumberAllocationError(f"Failed to generate unique {prefix} number") from e
            sleep(0.1 * attempt)
    raise NumberAllocationError(f"Failed to generate {prefix} number after maximum retries")


def generate_application_number(s: Session, year: int | None = None) -> str:
    from app.lending.modules.applications.models import Application

    return next_sequence_number(s, Application.application_number, "APP", year=year)
