"""
Quick helper to list dispute letters, vehicle checks and referral stats for a given email.

Usage:
  python -m scripts.check_user_orders you@example.com
"""
import sys

from core.database import get_user_by_email, list_dispute_letters_for_user, list_vehicle_lookups_for_user
from core.referrals import get_user_referral_stats


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m scripts.check_user_orders <email>")
        sys.exit(1)

    email = sys.argv[1].strip().lower()
    user = get_user_by_email(email)
    if not user:
        print(f"No account found for {email}")
        return

    print(
        f"User id={user['id']} role={user.get('role')} "
        f"verified={bool(user.get('email_verified_at'))} "
        f"report_access={bool(user.get('has_comprehensive_report_access'))}"
    )

    letters = list_dispute_letters_for_user(user["id"])
    print(f"Found {len(letters)} dispute letter(s):")
    for letter in letters:
        print(
            f"  id={letter.get('id')} "
            f"pcn={letter.get('ticket_number')} "
            f"price={letter.get('price')} "
            f"payment={letter.get('payment_status')} "
            f"status={letter.get('status')}"
        )

    lookups = list_vehicle_lookups_for_user(user["id"])
    print(f"Last {len(lookups)} vehicle check(s):")
    for lookup in lookups:
        print(f"  {lookup.get('registration')} ({lookup.get('data_type')}) at {lookup.get('created_at')}")

    stats = get_user_referral_stats(user["id"])
    print(
        f"Referral code={stats['code']} referrals={stats['total_referrals']} "
        f"converted={stats['converted_referrals']} pending={stats['pending_earnings']} paid={stats['paid_earnings']}"
    )


if __name__ == "__main__":
    main()
