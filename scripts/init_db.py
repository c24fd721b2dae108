import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.config import normalize_database_url  # noqa: E402
from app.crm.models import ROLE_ADMIN, Base, User  # noqa: E402
from app.crm.utils import utcnow  # noqa: E402


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True, pool_pre_ping=True)
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
        engine.dispose()


def seed_only(*, database_url: str | None = None, create_tables: bool = False) -> User:
    """
    Ensure the bootstrap administrator exists.
    Idempotent: an existing account (even a soft-deleted one) is never overwritten.
    """
    username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    password = os.environ.get("ADMIN_PASSWORD") or "admin123"
    name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()

    db_url = normalize_database_url((database_url or os.environ.get("DATABASE_URL") or "sqlite:///crm.db").strip())

    with _session_scope(db_url) as s:
        if create_tables:
            Base.metadata.create_all(bind=s.get_bind())

        user = User.live(s, include_deleted=True).filter(User.username == username).one_or_none()
        if user is None:
            now = utcnow()
            user = User(
                username=username,
                password_hash=generate_password_hash(password),
                name=name,
                role=ROLE_ADMIN,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            s.add(user)
            print(f"Created admin user: {username}")
        else:
            print(f"Admin user already exists: {username}")

    print("Admin password: (from ADMIN_PASSWORD)")
    return user


def main() -> None:
    # Local runs without alembic get the tables created directly.
    seed_only(database_url=None, create_tables="--create-tables" in sys.argv[1:])


if __name__ == "__main__":
    main()
