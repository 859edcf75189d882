# src/yogic_ledger/api/v1/endpoints/rewards.py
"""Wallet, history, bonus and phase endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from yogic_ledger.api.v1.dependencies import CurrentUserDep, LedgerDep
from yogic_ledger.api.v1.errors import to_http_exception
from yogic_ledger.core.phases import PHASE_TABLE, rate_for_tier
from yogic_ledger.schemas.activity import MilestoneAwardResponse
from yogic_ledger.schemas.rewards import (
    BonusAwardResponse,
    BonusResponse,
    DailyRecordResponse,
    PhaseResponse,
    RedeemRequest,
    RewardSummaryResponse,
    SocialEngagementRequest,
    TransactionResponse,
    WalletResponse,
)
from yogic_ledger.services.bonuses import check_milestones
from yogic_ledger.services.errors import LedgerError

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("/wallet", response_model=WalletResponse)
def get_wallet(current_user: CurrentUserDep, ledger: LedgerDep) -> WalletResponse:
    """Return the caller's cached balance."""
    return WalletResponse.model_validate(ledger.wallet(current_user.user_id))


@router.get("/summary", response_model=RewardSummaryResponse)
def get_summary(current_user: CurrentUserDep, ledger: LedgerDep) -> RewardSummaryResponse:
    """Return balance, today's accrual, recent bonuses and phase progress."""
    summary = ledger.reward_summary(current_user.user_id)
    today = summary["today"]
    return RewardSummaryResponse(
        wallet=WalletResponse.model_validate(summary["wallet"]),
        today=DailyRecordResponse.model_validate(today) if today is not None else None,
        recent_bonuses=[BonusResponse.model_validate(b) for b in summary["recent_bonuses"]],
        multiplier=float(summary["multiplier"]),
        phase=summary["phase"],
    )


@router.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    current_user: CurrentUserDep,
    ledger: LedgerDep,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[TransactionResponse]:
    """Return the caller's transaction log, newest first."""
    return [
        TransactionResponse.model_validate(entry)
        for entry in ledger.transactions(current_user.user_id, limit=limit, offset=offset)
    ]


@router.post("/milestones/check", response_model=list[MilestoneAwardResponse])
def check_user_milestones(
    current_user: CurrentUserDep,
    ledger: LedgerDep,
) -> list[MilestoneAwardResponse]:
    """Award any lifetime milestones reached but not yet paid."""
    try:
        awards = check_milestones(ledger, current_user.user_id)
    except LedgerError as err:
        raise to_http_exception(err) from err
    return [
        MilestoneAwardResponse(milestone_name=a.milestone_name, bonus_awarded=a.bonus_awarded)
        for a in awards
    ]


@router.post("/redeem", response_model=WalletResponse)
def redeem(
    payload: RedeemRequest,
    current_user: CurrentUserDep,
    ledger: LedgerDep,
) -> WalletResponse:
    """Spend coins from the caller's balance."""
    try:
        ledger.redeem(
            current_user.user_id,
            payload.amount,
            payload.description,
            reference=payload.reference,
        )
    except LedgerError as err:
        raise to_http_exception(err) from err
    return WalletResponse.model_validate(ledger.wallet(current_user.user_id))


@router.post("/social", response_model=BonusAwardResponse)
def reward_social_engagement(
    payload: SocialEngagementRequest,
    current_user: CurrentUserDep,
    ledger: LedgerDep,
) -> BonusAwardResponse:
    """Reward a like, comment, share or post once per target."""
    try:
        result = ledger.award_social_engagement(
            current_user.user_id, payload.engagement_type, payload.target_id
        )
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(err),
        ) from err
    except LedgerError as err:
        raise to_http_exception(err) from err
    return BonusAwardResponse(awarded=result.awarded, amount=result.amount)


@router.get("/phases", response_model=list[PhaseResponse])
def list_phases() -> list[PhaseResponse]:
    """Return the public phase schedule."""
    return [
        PhaseResponse(
            tier=phase.tier,
            name=phase.name,
            rate_numerator=phase.rate_numerator,
            step_threshold=phase.step_threshold,
            multiplier=float(rate_for_tier(phase.tier)),
        )
        for phase in PHASE_TABLE
    ]
