import sys
from pathlib import Path

from sqlalchemy.orm import Session

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.lending.constants import PERMISSIONS, ROLE_NAMES, ROLES  # noqa: E402
from app.lending.models import Permission, Role  # noqa: E402
from scripts._db_utils import database_url, script_session  # noqa: E402


def seed(s: Session) -> dict[str, Role]:
    """
    Seed the permission catalog and the admin/processor roles in an idempotent way.
    Existing grants are kept; missing ones are added.
    """
    perms: dict[str, Permission] = {}
    for key, name, _roles in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for role_key in ROLES:
        r = s.query(Role).filter(Role.key == role_key).one_or_none()
        if not r:
            r = Role(key=role_key, name=ROLE_NAMES[role_key])
            s.add(r)
        roles[role_key] = r

    for key, _name, holders in PERMISSIONS:
        for role_key in holders:
            if perms[key] not in roles[role_key].permissions:
                roles[role_key].permissions.append(perms[key])
    s.flush()
    return roles


def seed_only(*, database_url_override: str | None = None) -> None:
    # Direct engine/session so release can run without importing app.wsgi.
    with script_session(database_url(database_url_override)) as s:
        roles = seed(s)
    print("Initialized database (seed_only).")
    print(f"Roles: {', '.join(sorted(roles))}; permissions: {len(PERMISSIONS)}")
    print("Promote a signed-up user with: python scripts/attach_admin_role.py --email <email>")


def main() -> None:
    seed_only()


if __name__ == "__main__":
    main()
