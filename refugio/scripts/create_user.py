"""
Create a user (e.g. the first admin). Run from project root:
  python -m refugio.scripts.create_user EMAIL PASSWORD [role] [--name "Display Name"]
Example:
  python -m refugio.scripts.create_user admin@lugarderefugio.com your-secure-password1 admin --name Administrador
"""
import argparse
import sys

from refugio.core.database import SessionLocal
from refugio.core.exceptions import Conflict, WeakPassword
from refugio.core.security import EMAIL_MAX_LEN, hash_password, validate_password
from refugio.schemas.roles import ROLE_ALIASES, ROLE_VALUES
from refugio.services.credentials import CredentialStore


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a Refugio user for self-managed authentication.")
    parser.add_argument("email", help="Email address (case-insensitive, must be unique)")
    parser.add_argument("password", help="Password (8-128 chars, at least one letter and one digit)")
    parser.add_argument(
        "role",
        nargs="?",
        default="member",
        choices=sorted(ROLE_VALUES | set(ROLE_ALIASES)),
    )
    parser.add_argument("--name", default=None, help="Display name (defaults to the email's local part)")
    args = parser.parse_args(argv)

    email = args.email.strip()
    if "@" not in email or len(email) > EMAIL_MAX_LEN:
        print("Invalid email address.", file=sys.stderr)
        return 1
    try:
        validate_password(args.password)
    except WeakPassword as e:
        print(e.message, file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        try:
            user = CredentialStore(db).create(
                email,
                hash_password(args.password),
                display_name=args.name,
                role=args.role,
            )
        except Conflict:
            print(f"User '{email}' already exists.", file=sys.stderr)
            return 1
        print(f"Created user '{user.email}' with role '{user.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
