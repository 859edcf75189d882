# src/yogic_ledger/api/v1/endpoints/internal.py
"""Endpoints called by trusted internal jobs (daily check-in, referral batch)."""

from fastapi import APIRouter, HTTPException, status

from yogic_ledger.api.v1.dependencies import InternalKeyDep, LedgerDep
from yogic_ledger.api.v1.errors import to_http_exception
from yogic_ledger.models import UserAccount
from yogic_ledger.schemas.referral import RefereeActivityRequest, RefereeActivityResponse
from yogic_ledger.schemas.rewards import StreakBonusRequest, StreakBonusResponse
from yogic_ledger.services.bonuses import award_streak_bonus
from yogic_ledger.services.errors import LedgerError
from yogic_ledger.services.referrals import on_referee_activity

router = APIRouter(prefix="/internal", tags=["internal"], dependencies=[InternalKeyDep])


@router.post("/streak-bonus", response_model=StreakBonusResponse)
def streak_bonus(payload: StreakBonusRequest, ledger: LedgerDep) -> StreakBonusResponse:
    """Pay the weekly streak bonus reached by a check-in."""
    if ledger.db.get(UserAccount, payload.user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    try:
        result = award_streak_bonus(ledger, payload.user_id, payload.streak_days)
    except LedgerError as err:
        raise to_http_exception(err) from err
    return StreakBonusResponse(awarded=result.awarded, amount=result.amount)


@router.post("/referral-activity", response_model=RefereeActivityResponse)
def referral_activity(
    payload: RefereeActivityRequest,
    ledger: LedgerDep,
) -> RefereeActivityResponse:
    """Unlock a pending referral once the referee has walked enough."""
    try:
        unlocked = on_referee_activity(ledger, payload.referee_id, payload.lifetime_steps)
    except LedgerError as err:
        raise to_http_exception(err) from err
    return RefereeActivityResponse(unlocked=unlocked)
