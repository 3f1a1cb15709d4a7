from flask import Blueprint, request, abort, current_app
from flask_jwt_extended import create_access_token, jwt_required
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from erp.models.authz import User, Role, Permission, RolePermission, UserRole
from erp import get_db
from erp.constants.permissions import PermissionCode
from erp.errors import FieldValidationError, UniqueConflict
from erp.schemas.iam import RegisterForm, RoleForm
from erp.services.audit import add_audit
from erp.services.bootstrap import bootstrap_authz, ensure_permission_rows
from erp.services.policy import assert_not_removing_last_admin, current_permissions, current_user_id, load_role_grants
from erp.utils.listing import paginate, build_list_payload
from erp.utils.validation import echo_values, form_payload, parse_form
from erp.decorators.auth import require_permissions

iam_bp = Blueprint('iam', __name__)


def _role_json(r: Role):
    return {
        'id': r.id,
        'name': r.name,
        'is_system': r.is_system,
        'is_default': r.is_default,
        'permissions': sorted(r.permission_codes),
    }


def _user_json(u: User):
    return {
        'id': u.id,
        'name': u.name,
        'email': u.email,
        'is_active': u.is_active,
        'roles': sorted(ur.role.name for ur in u.user_roles),
    }


@iam_bp.post('/auth/register')
def register():
    data = form_payload()
    form = parse_form(RegisterForm, data)
    session = get_db()
    user = User(name=form.name, email=form.email, is_active=True)
    user.set_password(form.password)
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise UniqueConflict('email', 'Email is already registered.', echo_values(data, ['name', 'email']))
    # first account of an empty system becomes Administrator
    seeded = bootstrap_authz(session, user)
    add_audit(session, 'USER.REGISTER', entity='User', entity_id=user.id,
              meta={'email': user.email, 'bootstrapped': seeded}, actor_user_id=user.id)
    session.commit()
    current_app.logger.info('Registered user %s (bootstrap=%s)', user.id, seeded)
    session.expire(user, ['user_roles'])
    return _user_json(user), 201


@iam_bp.post('/auth/login')
def login():
    data = form_payload()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password):
        abort(401, description='invalid credentials')
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id))
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    session = get_db()
    user = session.get(User, current_user_id())
    if not user:
        abort(404)
    # recomputed from the database on every call, never read from the token
    grants = load_role_grants(session, user.id)
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'is_active': user.is_active,
        'roles': sorted(g.name for g in grants),
        'perms': sorted(code.value for code in current_permissions()),
    }


@iam_bp.get('/permissions')
@require_permissions(PermissionCode.ROLES_MANAGE)
def list_permissions():
    session = get_db()
    ensure_permission_rows(session)
    session.commit()
    rows, total, limit, offset = paginate(session, select(Permission).order_by(Permission.code.asc()))
    data = [{'id': p.id, 'code': p.code, 'module': p.module, 'description': p.description} for p in rows]
    return build_list_payload(data, total, limit, offset)


@iam_bp.get('/roles')
@require_permissions(PermissionCode.ROLES_MANAGE)
def list_roles():
    session = get_db()
    stmt = select(Role).options(selectinload(Role.permissions).selectinload(RolePermission.permission)).order_by(Role.id.asc())
    stmt = stmt.execution_options(populate_existing=True)
    rows, total, limit, offset = paginate(session, stmt)
    return build_list_payload([_role_json(r) for r in rows], total, limit, offset)


@iam_bp.post('/roles')
@require_permissions(PermissionCode.ROLES_MANAGE)
def create_role():
    data = form_payload()
    form = parse_form(RoleForm, data)
    session = get_db()
    perms = ensure_permission_rows(session)
    role = Role(name=form.name, is_system=False, is_default=False)
    session.add(role)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise UniqueConflict('name', 'Name must be unique.', echo_values(data, ['name', 'permissions']))
    for code in form.permissions:
        session.add(RolePermission(role_id=role.id, permission_id=perms[code].id))
    add_audit(session, 'ROLE.CREATE', entity='Role', entity_id=role.id,
              meta={'name': role.name, 'permissions': form.permissions})
    session.commit()
    session.refresh(role)
    return _role_json(role), 201


@iam_bp.put('/roles/<int:role_id>/permissions')
@require_permissions(PermissionCode.ROLES_MANAGE)
def replace_role_permissions(role_id: int):
    session = get_db()
    role = session.get(Role, role_id)
    if not role:
        abort(404)
    if role.is_system:
        abort(400, description='Built-in role permissions cannot be changed')
    data = form_payload()
    form = parse_form(RoleForm, {'name': role.name, 'permissions': data.get('permissions')})
    perms = ensure_permission_rows(session)
    before = sorted(role.permission_codes)
    session.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
    for code in form.permissions:
        session.add(RolePermission(role_id=role.id, permission_id=perms[code].id))
    add_audit(session, 'ROLE.PERM.REPLACE', entity='Role', entity_id=role.id,
              meta={'before': before, 'after': form.permissions})
    session.commit()
    session.expire(role, ['permissions'])
    return {'id': role.id, 'permissions': form.permissions}


@iam_bp.get('/users')
@require_permissions(PermissionCode.USERS_MANAGE)
def list_users():
    session = get_db()
    stmt = select(User).options(selectinload(User.user_roles).selectinload(UserRole.role)).order_by(User.id.asc())
    stmt = stmt.execution_options(populate_existing=True)
    if q := (request.args.get('q') or '').strip():
        stmt = stmt.where(User.email.ilike(f'%{q}%') | User.name.ilike(f'%{q}%'))
    rows, total, limit, offset = paginate(session, stmt)
    return build_list_payload([_user_json(u) for u in rows], total, limit, offset)


@iam_bp.put('/users/<int:user_id>/roles')
@require_permissions(PermissionCode.USERS_MANAGE)
def set_user_roles(user_id: int):
    session = get_db()
    user = session.get(User, user_id)
    if not user:
        abort(404)
    data = form_payload()
    raw_ids = data.get('role_ids') or []
    if not isinstance(raw_ids, list) or any(isinstance(r, bool) or not isinstance(r, int) for r in raw_ids):
        raise FieldValidationError({'role_ids': 'Role ids must be a list of integers'}, {'role_ids': raw_ids})
    role_ids = set(raw_ids)
    roles = session.execute(select(Role).where(Role.id.in_(list(role_ids)))).scalars().all() if role_ids else []
    missing = role_ids - {r.id for r in roles}
    if missing:
        raise FieldValidationError({'role_ids': f'Unknown role ids: {sorted(missing)}'}, {'role_ids': raw_ids})
    assert_not_removing_last_admin(session, user.id, role_ids)
    before = sorted(ur.role_id for ur in user.user_roles)
    session.execute(delete(UserRole).where(UserRole.user_id == user.id))
    for rid in sorted(role_ids):
        session.add(UserRole(user_id=user.id, role_id=rid))
    add_audit(session, 'USER.ROLES.SET', entity='User', entity_id=user.id,
              meta={'before': before, 'after': sorted(role_ids)})
    session.commit()
    session.expire(user, ['user_roles'])
    return {'user_id': user.id, 'role_ids': sorted(role_ids)}
