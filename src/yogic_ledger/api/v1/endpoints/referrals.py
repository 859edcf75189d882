# src/yogic_ledger/api/v1/endpoints/referrals.py
"""Referral endpoints."""

from fastapi import APIRouter, status

from yogic_ledger.api.v1.dependencies import CurrentUserDep, LedgerDep
from yogic_ledger.api.v1.errors import to_http_exception
from yogic_ledger.schemas.referral import ReferralCreate, ReferralOverview, ReferralResponse
from yogic_ledger.services.errors import LedgerError
from yogic_ledger.services.referrals import get_referral, list_referrals, register_referral

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.post("/", response_model=ReferralResponse, status_code=status.HTTP_201_CREATED)
def create_referral(
    payload: ReferralCreate,
    current_user: CurrentUserDep,
    ledger: LedgerDep,
) -> ReferralResponse:
    """Record the friend who invited the authenticated user."""
    try:
        relationship = register_referral(ledger, payload.referrer_id, current_user.user_id)
    except LedgerError as err:
        raise to_http_exception(err) from err
    return ReferralResponse.model_validate(relationship)


@router.get("/me", response_model=ReferralOverview)
def my_referrals(current_user: CurrentUserDep, ledger: LedgerDep) -> ReferralOverview:
    """Return who referred the caller and whom the caller referred."""
    referred_by = get_referral(ledger, current_user.user_id)
    return ReferralOverview(
        referred_by=ReferralResponse.model_validate(referred_by) if referred_by else None,
        referrals=[
            ReferralResponse.model_validate(r)
            for r in list_referrals(ledger, current_user.user_id)
        ],
    )
