"""
Issue a one-time password reset token for a user. Run from project root:
  python -m refugio.scripts.reset_password EMAIL
Hand the printed token to the user; they redeem it at POST /auth/password-reset/confirm.
"""
import argparse
import sys

from refugio.core.config import get_settings
from refugio.core.database import SessionLocal
from refugio.core.exceptions import StoreUnavailable
from refugio.services.auth import LocalAuthService


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Issue a password reset token for a self-managed Refugio user.")
    parser.add_argument("email", help="Email address of the account")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        service = LocalAuthService(db, get_settings())
        try:
            user = service.credentials.find_by_email(args.email)
            if user is None:
                print(f"No user with email '{args.email.strip()}'.", file=sys.stderr)
                return 1
            grant = service.issue_password_reset(user.id)
        except StoreUnavailable as e:
            print(e.message, file=sys.stderr)
            return 1
        print(f"Reset token for '{user.email}' (expires {grant.expires_at.isoformat()}):")
        print(grant.token)
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
