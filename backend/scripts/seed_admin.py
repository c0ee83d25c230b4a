#!/usr/bin/env python3
"""
Admin seed script.

Creates the first administrator, who can then list contributors and approve
super contributor requests through the API. An existing account with the
same email is upgraded instead.

Usage:
    python -m scripts.seed_admin <email> <username> <password>
"""
from enum import Enum
import sys
from uuid import uuid4

from sqlalchemy.orm import Session

from village_map.auth import hash_password
from village_map.database import init_db, session_scope
from village_map.models.db_models import UserDB, ContributorRole

MIN_PASSWORD_LENGTH = 8


class SeedOutcome(str, Enum):
    CREATED = "created"
    UPGRADED = "upgraded"
    ALREADY_ADMIN = "already_admin"
    USERNAME_TAKEN = "username_taken"


def seed_admin(db: Session, email: str, username: str, password: str) -> SeedOutcome:
    """Stage an admin account on the session. The caller commits."""
    by_email = db.query(UserDB).filter(UserDB.email == email).first()
    if by_email is not None:
        if by_email.role == ContributorRole.ADMIN.value:
            return SeedOutcome.ALREADY_ADMIN
        by_email.role = ContributorRole.ADMIN.value
        return SeedOutcome.UPGRADED

    if db.query(UserDB).filter(UserDB.username == username).first() is not None:
        return SeedOutcome.USERNAME_TAKEN

    db.add(UserDB(
        id=str(uuid4()),
        email=email,
        username=username,
        password_hash=hash_password(password),
        role=ContributorRole.ADMIN.value,
    ))
    return SeedOutcome.CREATED


MESSAGES = {
    SeedOutcome.CREATED: "Admin user '{email}' created.",
    SeedOutcome.UPGRADED: "Upgraded existing user '{email}' to admin.",
    SeedOutcome.ALREADY_ADMIN: "Error: '{email}' is already an admin.",
    SeedOutcome.USERNAME_TAKEN: "Error: username '{username}' is already taken.",
}


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 3:
        print(__doc__)
        return 1

    email, username, password = args
    if "@" not in email:
        print("Error: invalid email address.")
        return 1
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"Error: password must be at least {MIN_PASSWORD_LENGTH} characters.")
        return 1

    init_db()
    with session_scope() as db:
        outcome = seed_admin(db, email, username, password)

    print(MESSAGES[outcome].format(email=email, username=username))
    return 0 if outcome in (SeedOutcome.CREATED, SeedOutcome.UPGRADED) else 1


if __name__ == "__main__":
    sys.exit(main())
