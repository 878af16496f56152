"""
Unit tests for subscription-gated access checks.
"""
import pytest

from conftest import DT0
from fitpro.db.models.enrollment import Enrollment
from fitpro.services.access_service import (
    can_access_program,
    get_enrolled_program_ids,
    get_program_status,
    has_unlimited_access,
)


@pytest.mark.parametrize("status,expected", [
    ("active", True),
    ("trialing", False),
    ("past_due", False),
    ("canceled", False),
    ("inactive", False),
    (None, False),
])
def test_only_active_status_unlocks_everything(member, status, expected):
    member.subscription_status = status
    assert has_unlimited_access(member) is expected


def test_active_subscription_ignores_end_date(member):
    # end date is display only
    member.subscription_status = "active"
    member.subscription_end_date = DT0
    assert has_unlimited_access(member) is True


def test_subscriber_can_access_any_program(db, member):
    member.subscription_status = "active"
    db.commit()

    assert can_access_program(db, member, "prog_never_bought") is True


def test_enrollment_grants_single_program(db, member):
    db.add(Enrollment(user_id=member.id, program_id="prog_1", active=True))
    db.commit()

    assert can_access_program(db, member, "prog_1") is True
    assert can_access_program(db, member, "prog_2") is False


def test_inactive_enrollment_grants_nothing(db, member):
    db.add(Enrollment(user_id=member.id, program_id="prog_1", active=False))
    db.commit()

    assert can_access_program(db, member, "prog_1") is False
    assert get_enrolled_program_ids(db, member.id) == []


def test_program_status(db, member):
    db.add(Enrollment(user_id=member.id, program_id="prog_1", active=True))
    member.subscription_status = "past_due"
    db.commit()

    assert get_program_status(db, member) == {
        "enrolledProgramIds": ["prog_1"],
        "hasActiveSubscription": False,
    }
