#!/usr/bin/env python
"""Idempotent seed script for permissions & built-in roles.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)

Set SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD to also create the initial
Administrator account when the system has no users yet.
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import func, select, inspect

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from erp import create_app, get_database, get_db  # type: ignore
from erp.constants.permissions import ADMIN_ROLE
from erp.models.authz import Role, User, UserRole
from erp.services.bootstrap import builtin_roles_exist, ensure_permission_rows, bootstrap_authz, sync_builtin_role_permissions


def ensure_schema(app):
    db = get_database(app)
    if not inspect(db.engine).has_table('permissions'):
        # lightweight fallback if migrations were not run; prefer `alembic upgrade head`
        print('[INFO] Schema missing; creating tables from model metadata')
        db.create_all()


def initial_admin(session):
    email = os.getenv('SEED_ADMIN_EMAIL')
    password = os.getenv('SEED_ADMIN_PASSWORD')
    if not email or not password:
        return None
    if session.execute(select(func.count(User.id))).scalar_one():
        print('[INFO] Users already exist; skipping initial admin creation')
        return None
    user = User(name='Administrator', email=email.strip().lower(), is_active=True)
    user.set_password(password)
    session.add(user)
    session.flush()
    return user


def grant_administrator(session, user):
    """Assign Administrator to a user created after the built-in roles were seeded."""
    role = session.execute(select(Role).where(Role.name == ADMIN_ROLE.name)).scalar_one()
    session.add(UserRole(user_id=user.id, role_id=role.id))
    session.flush()


def print_role_summary(session):
    rows = [(r.name, sorted(r.permission_codes)) for r in session.execute(select(Role).order_by(Role.id)).scalars()]
    if not rows:
        print("[INFO] No roles present.")
        return
    name_w = max(len(r[0]) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 6)")
    print('-' * (name_w + 40))
    for name, codes in rows:
        print(f"{name.ljust(name_w)} | {str(len(codes)).rjust(5)} | {', '.join(codes[:6])}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed permission rows & built-in roles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        ensure_schema(app)
        session = get_db()
        try:
            if args.dry_run:
                ensure_permission_rows(session)
                would_seed = not builtin_roles_exist(session)
                added = sync_builtin_role_permissions(session)
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Built-in roles would be created: {would_seed}, grants added: {added}")
            else:
                # flushed, not committed: bootstrap commits it together with the roles
                admin = initial_admin(session)
                seeded = bootstrap_authz(session, admin)
                if admin is not None and not seeded:
                    if admin in session:
                        grant_administrator(session, admin)
                    else:
                        # rolled back together with a concurrent bootstrap
                        print(f"[WARN] Initial Administrator {admin.email} was not created; rerun the seed")
                        admin = None
                added = sync_builtin_role_permissions(session)
                session.commit()
                print(f"[DONE] Built-in roles created: {seeded}, grants added: {added}")
                if admin is not None:
                    print(f"[INFO] Created initial Administrator {admin.email}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(session)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
