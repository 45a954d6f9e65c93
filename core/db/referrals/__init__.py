from core.db.referrals.referral_store import (
    create_referral,
    get_referral_code_for_user,
    get_referral_code_owner,
    get_referral_for_referred_user,
    insert_referral_code,
    list_converted_referrers,
    list_referrals,
    list_referrals_for_referrer,
    mark_referral_converted,
)
from core.db.referrals.payout_store import (
    PAYOUT_STATUSES,
    create_payout,
    list_payouts,
    list_payouts_for_user,
    update_payout_status,
)

__all__ = [
    "create_referral",
    "get_referral_code_for_user",
    "get_referral_code_owner",
    "get_referral_for_referred_user",
    "insert_referral_code",
    "list_converted_referrers",
    "list_referrals",
    "list_referrals_for_referrer",
    "mark_referral_converted",
    "PAYOUT_STATUSES",
    "create_payout",
    "list_payouts",
    "list_payouts_for_user",
    "update_payout_status",
]
