import pytest
from sqlalchemy.exc import OperationalError

from app.lending.errors import NumberAllocationError
from app.lending.modules.applications.models import Application
from app.lending.modules.applications.numbering import (
    MAX_ATTEMPTS,
    format_number,
    generate_application_number,
    next_sequence_number,
)


def _add(db, user_id, number):
    db.add(Application(application_number=number, created_by=user_id))
    db.flush()


def test_format_number_pads_sequence():
    assert format_number("APP", 2025, 7) == "APP-2025-000007"
    assert format_number("LN", 2024, 123456) == "LN-2024-123456"


def test_first_number_of_the_year(db):
    assert generate_application_number(db, year=2025) == "APP-2025-000001"


def test_increments_from_highest_existing(db, processor):
    _add(db, processor, "APP-2025-000001")
    _add(db, processor, "APP-2025-000009")
    assert generate_application_number(db, year=2025) == "APP-2025-000010"


def test_sequence_restarts_each_year(db, processor):
    _add(db, processor, "APP-2024-000041")
    assert generate_application_number(db, year=2025) == "APP-2025-000001"
    assert generate_application_number(db, year=2024) == "APP-2024-000042"


def test_prefixes_are_independent(db, processor):
    _add(db, processor, "APP-2025-000003")
    assert next_sequence_number(db, Application.application_number, "TST", year=2025) == "TST-2025-000001"


class _BrokenSession:
    def execute(self, *args, **kwargs):
        raise OperationalError("SELECT max(...)", {}, Exception("database is locked"))


def test_gives_up_after_repeated_db_errors():
    delays = []
    with pytest.raises(NumberAllocationError):
        next_sequence_number(_BrokenSession(), Application.application_number, "APP", year=2025, sleep=delays.append)
    assert len(delays) == MAX_ATTEMPTS - 1
    assert delays == pytest.approx([0.1, 0.2, 0.3, 0.4])


def test_sequence_past_six_digits(db, processor):
    _add(db, processor, "APP-2025-999999")
    _add(db, processor, "APP-2025-1000000")
    assert generate_application_number(db, year=2025) == "APP-2025-1000001"
