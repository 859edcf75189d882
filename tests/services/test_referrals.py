"""Tests for referral registration and unlock."""

import pytest

from yogic_ledger.models import REFERRAL_STATUS_COMPLETED, REFERRAL_STATUS_PENDING, UserAccount
from yogic_ledger.schemas.events import ReferralBonusEvent, parse_event
from yogic_ledger.services.errors import ReferralError
from yogic_ledger.services.referrals import (
    get_referral,
    list_referrals,
    on_referee_activity,
    register_referral,
)


@pytest.fixture()
def third_user(db_session) -> UserAccount:
    user = UserAccount(mobile_number="+919800000003", display_name="Third User")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def test_register_referral(ledger, test_user, other_user) -> None:
    relationship = register_referral(ledger, other_user.user_id, test_user.user_id)

    assert relationship.status == REFERRAL_STATUS_PENDING
    assert get_referral(ledger, test_user.user_id).referrer_id == other_user.user_id
    assert [r.referee_id for r in list_referrals(ledger, other_user.user_id)] == [
        test_user.user_id
    ]


def test_self_referral_is_rejected(ledger, test_user) -> None:
    with pytest.raises(ReferralError):
        register_referral(ledger, test_user.user_id, test_user.user_id)


def test_unknown_referrer_is_rejected(ledger, test_user) -> None:
    with pytest.raises(ReferralError):
        register_referral(ledger, "no-such-user", test_user.user_id)


def test_first_referrer_wins(ledger, test_user, other_user, third_user) -> None:
    register_referral(ledger, other_user.user_id, test_user.user_id)

    with pytest.raises(ReferralError):
        register_referral(ledger, third_user.user_id, test_user.user_id)

    assert get_referral(ledger, test_user.user_id).referrer_id == other_user.user_id


def test_referral_unlocks_at_threshold(ledger, test_user, other_user) -> None:
    register_referral(ledger, other_user.user_id, test_user.user_id)

    assert on_referee_activity(ledger, test_user.user_id, 999) is False
    assert ledger.wallet(other_user.user_id).total_balance == 0

    assert on_referee_activity(ledger, test_user.user_id, 1000) is True

    assert ledger.wallet(other_user.user_id).total_balance == 200
    assert ledger.wallet(test_user.user_id).total_balance == 100
    relationship = get_referral(ledger, test_user.user_id)
    assert relationship.status == REFERRAL_STATUS_COMPLETED
    assert relationship.completed_at is not None

    event = parse_event(ledger.transactions(other_user.user_id)[0].metadata_)
    assert isinstance(event, ReferralBonusEvent)
    assert event.role == "referrer"
    assert event.referee_id == test_user.user_id


def test_referral_unlock_is_paid_once(ledger, test_user, other_user) -> None:
    register_referral(ledger, other_user.user_id, test_user.user_id)

    assert on_referee_activity(ledger, test_user.user_id, 5000) is True
    assert on_referee_activity(ledger, test_user.user_id, 6000) is False

    assert ledger.wallet(other_user.user_id).total_balance == 200
    assert ledger.wallet(test_user.user_id).total_balance == 100


def test_activity_without_referral_is_a_no_op(ledger, test_user) -> None:
    assert on_referee_activity(ledger, test_user.user_id, 50_000) is False
    assert ledger.wallet(test_user.user_id).total_balance == 0
