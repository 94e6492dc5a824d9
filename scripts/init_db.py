import os
import sys
from datetime import datetime
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.umbra.constants import ROLE_ADMIN, STATUS_APPROVED
from app.umbra.models import User
from app.umbra.modules.bonuses.service import ensure_default_grid
from app.umbra.modules.shifts.service import ensure_default_settings
from scripts._db_utils import resolve_database_url, script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin user, default shift settings and the default bonus grid in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@umbra.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me-1"
    admin_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()

    db_url = resolve_database_url(database_url)

    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            now = datetime.utcnow()
            user = User(
                email=admin_email,
                name=admin_name,
                password_hash=generate_password_hash(admin_password),
                role=ROLE_ADMIN,
                status=STATUS_APPROVED,
                is_blocked=False,
                created_at=now,
                updated_at=now,
            )
            s.add(user)
        else:
            # Keep the password, but make sure the seeded account can administer.
            user.role = ROLE_ADMIN
            user.status = STATUS_APPROVED
            user.is_blocked = False

        ensure_default_settings(s)
        tiers = ensure_default_grid(s)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    if tiers:
        print(f"Seeded {tiers} bonus grid tiers.")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
