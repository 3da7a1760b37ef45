#!/usr/bin/env python3
"""
User management API
"""

import logging
from flask import Blueprint, request, jsonify, g

from audit import audit_current_user
from models import db, User
from permissions import require_auth, require_admin
from user_store import (
    UserError,
    change_password,
    create_user,
    delete_user,
    list_users,
)

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@users_bp.route('', methods=['GET'])
@require_auth
@require_admin
def list_users_api():
    return jsonify({'success': True, 'users': [u.to_dict() for u in list_users()]})


@users_bp.route('', methods=['POST'])
@require_auth
@require_admin
def create_user_api():
    data = request.get_json(silent=True) or {}
    user = create_user(data.get('username'), data.get('password'), is_admin=data.get('is_admin') is True)
    audit_current_user("user_created", f"Created user {user.username}")
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_user_api(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'success': False, 'error': 'User not found'}), 404

    username = user.username
    moved = delete_user(user, g.current_user)
    audit_current_user("user_deleted", f"Deleted user {username}, {moved} containers transferred")
    return jsonify({'success': True, 'transferredContainers': moved})


@users_bp.route('/password', methods=['POST'])
@require_auth
def change_password_api():
    """Users change their own password; admins may reset anyone's"""
    data = request.get_json(silent=True) or {}
    current_user = g.current_user
    target_id = data.get('user_id')

    if target_id is None or target_id == current_user.id:
        current_password = data.get('current_password')
        if not isinstance(current_password, str) or not current_password:
            raise UserError('Current password is required', 400)
        change_password(current_user, data.get('new_password'), current_password=current_password)
        audit_current_user("password_changed", "Changed own password")
        return jsonify({'success': True})

    if not current_user.is_admin:
        return jsonify({'success': False, 'error': 'Admin privileges required', 'code': 'PERMISSION_DENIED'}), 403
    target = db.session.get(User, target_id) if isinstance(target_id, int) else None
    if not target:
        return jsonify({'success': False, 'error': 'User not found'}), 404

    change_password(target, data.get('new_password'))
    audit_current_user("password_reset", f"Reset password for {target.username}")
    return jsonify({'success': True})
