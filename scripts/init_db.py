import argparse
import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.archive.models import Base, Profile  # noqa: E402
from app.archive.rbac import DIRECTOR, RolePolicy  # noqa: E402


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def _split_ids(raw: str | None) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed DIRECTOR profiles in an idempotent way.

    DIRECTOR_USER_IDS is a comma-separated list of identity-provider user ids.
    Existing profiles are promoted; nobody is ever demoted here.
    """
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///archive.db").strip()
    director_ids = _split_ids(os.environ.get("DIRECTOR_USER_IDS"))

    known_roles = set(RolePolicy.from_json(os.environ.get("ROLE_POLICY_JSON") or "").roles())
    if DIRECTOR not in known_roles:
        print(f"WARNING: role policy has no {DIRECTOR} entry; seeded profiles will have no category access.")

    # Use direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with _session_scope(db_url) as s:
        for user_id in director_ids:
            profile = s.get(Profile, user_id)
            if not profile:
                s.add(Profile(id=user_id, role=DIRECTOR))
            elif profile.role != DIRECTOR:
                profile.role = DIRECTOR

    print("Initialized database (seed_only).")
    print(f"Director profiles: {len(director_ids)}")


def create_tables(*, database_url: str | None = None) -> None:
    """Dev-only: create tables straight from the models (use Alembic for real databases)."""
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///archive.db").strip()
    engine = create_engine(db_url, future=True)
    Base.metadata.create_all(bind=engine)
    print(f"Created tables on {engine.url.render_as_string(hide_password=True)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the records archive database.")
    parser.add_argument("--create-tables", action="store_true", help="create tables from models first (dev/sqlite)")
    args = parser.parse_args()
    if args.create_tables:
        create_tables(database_url=None)
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
