from __future__ import annotations

import argparse
import getpass

from sqlalchemy import select

from bottle_return.config import settings
from bottle_return.db import SessionLocal
from bottle_return.models import Principal, utc_now
from bottle_return.security.passwords import hash_password


def upsert_admin(db, *, username: str, password: str) -> tuple[Principal, bool]:
    username = username.strip()
    if not username:
        raise ValueError('Username is required')

    principal = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
    created = principal is None
    if created:
        principal = Principal(username=username, password_hash=hash_password(password), role=settings.admin_role, active=True)
        db.add(principal)
    else:
        principal.password_hash = hash_password(password)
        principal.role = settings.admin_role
        principal.active = True
        principal.updated_at = utc_now()
    db.flush()
    return principal, created


def main() -> None:
    parser = argparse.ArgumentParser(description='Create an admin account or reset its password.')
    parser.add_argument('username')
    parser.add_argument('--password', help='Password for the account. Prompted for when omitted.')
    args = parser.parse_args()

    password = args.password or getpass.getpass('Password: ')
    with SessionLocal() as db:
        try:
            _principal, created = upsert_admin(db, username=args.username, password=password)
        except ValueError as exc:
            parser.error(str(exc))
        db.commit()

    print(f"Admin '{args.username}' {'created' if created else 'updated'}.")


if __name__ == '__main__':
    main()
