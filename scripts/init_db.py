import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select  # noqa: E402

from app.cde.models import Tenant  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the default tenant in an idempotent way.
    An existing tenant with the same slug is left untouched.
    """
    slug = (os.environ.get("TENANT_SLUG") or "default").strip().lower()
    name = (os.environ.get("TENANT_NAME") or "Default Tenant").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///cde.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        tenant = s.execute(select(Tenant).where(Tenant.slug == slug)).scalar_one_or_none()
        if not tenant:
            tenant = Tenant(slug=slug, name=name)
            s.add(tenant)
            s.flush()
            print(f"Created tenant {slug!r} (id={tenant.id}).")
        else:
            print(f"Tenant {slug!r} already exists (id={tenant.id}).")

    print("Initialized database (seed_only).")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
