"""
Provision accounts out-of-band (elevated roles cannot self-register).

Run this from the backend root:

    (.venv) python seed_users.py --email hod.cs@college.edu --password secret123 \
        --name "Dr. Rao" --branch "Computer Science" --role hod

If the email already exists, the profile and role are updated in place and the
password is left untouched.
"""

import argparse
import logging
from typing import Optional

from sqlalchemy.orm import Session

from auth.security import hash_password
from Connections.db_sql import SessionLocal, engine
from Models.auth_models import ALL_ROLES, Profile, User, UserRole
from Models.base import Base
from Models import complaints_models  # noqa: F401  (register tables)

logger = logging.getLogger("seed_users")


def provision_user(
        db: Session,
        *,
        email: str,
        password: str,
        name: str,
        branch: str,
        role: str,
) -> tuple[User, bool]:
    """Create or update one account. Returns (user, created)."""
    email = email.strip().lower()
    if role not in ALL_ROLES:
        raise ValueError(f"role must be one of {list(ALL_ROLES)}")

    u: Optional[User] = db.query(User).filter(User.email == email).first()
    created = u is None
    if created:
        u = User(email=email, password_hash=hash_password(password))
        db.add(u)

    if u.profile is None:
        u.profile = Profile(email=email, name=name, branch=branch)
    else:
        u.profile.name = name
        u.profile.branch = branch

    if u.role_row is None:
        u.role_row = UserRole(role=role)
    else:
        u.role_row.role = role

    db.commit()
    db.refresh(u)
    return u, created


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--branch", default="General")
    parser.add_argument("--role", default="admin", choices=ALL_ROLES)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        u, created = provision_user(
            db,
            email=args.email,
            password=args.password,
            name=args.name,
            branch=args.branch,
            role=args.role,
        )
        logger.info("%s %s as %s (%s)", "Created" if created else "Updated", u.email, u.role, u.profile.branch)
    finally:
        db.close()


if __name__ == "__main__":
    main()
