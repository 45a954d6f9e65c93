"""
Give (or take away) the admin role for an existing account.

Usage:
  python -m scripts.grant_admin you@example.com
  python -m scripts.grant_admin you@example.com --revoke
"""
import argparse

from dotenv import load_dotenv

from core.database import get_user_by_email, set_user_role


def main():
    parser = argparse.ArgumentParser(description="Grant or revoke the admin role.")
    parser.add_argument("email")
    parser.add_argument("--revoke", action="store_true", help="demote back to a normal user")
    args = parser.parse_args()

    load_dotenv(override=True)
    user = get_user_by_email(args.email.strip().lower())
    if not user:
        raise SystemExit(f"No account found for {args.email}")

    role = "user" if args.revoke else "admin"
    set_user_role(user["id"], role)
    print(f"{user['email']} is now {role}")


if __name__ == "__main__":
    main()
