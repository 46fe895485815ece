#!/usr/bin/env python3
"""Make a mirrored user an admin (idempotent).

The user must have signed in once so their identity-provider account has a local row.

Usage:
  python scripts/attach_admin_role.py --email officer@example.com
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.lending.constants import ROLE_ADMIN  # noqa: E402
from app.lending.models import Role, User  # noqa: E402
from scripts._db_utils import database_url, script_session  # noqa: E402


def attach_admin_role(s, email: str) -> str:
    user = s.query(User).filter(User.email.ilike(email.strip())).one_or_none()
    if not user:
        return f"User not found: {email} (sign in once first)"
    role = s.query(Role).filter(Role.key == ROLE_ADMIN).one_or_none()
    if not role:
        return "Admin role not found. Run python scripts/init_db.py first."
    if role in (user.roles or []):
        return f"User already has admin role: {email}"
    # Single-role model: admin replaces processor.
    user.roles.clear()
    user.roles.append(role)
    return f"Admin role attached to {email}"


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email to promote to admin")
    args = parser.parse_args()

    with script_session(database_url()) as s:
        print(attach_admin_role(s, args.email))


if __name__ == "__main__":
    main()
