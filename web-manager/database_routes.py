#!/usr/bin/env python3
"""
Database API Routes
Postgres containers and per-user access grants
"""

import logging
from flask import Blueprint, request, jsonify, g

from audit import audit_current_user
from models import db, Database, User
from orchestrator import (
    create_database,
    delete_database,
    get_databases_for_user,
    grant_database_access,
    has_database_access,
    revoke_database_access,
)
from permissions import require_auth, require_admin

logger = logging.getLogger(__name__)

databases_bp = Blueprint('databases', __name__, url_prefix='/api/databases')


def _load_database(database_id):
    database = db.session.get(Database, database_id)
    if not database or not has_database_access(g.current_user, database_id):
        return None
    return database


@databases_bp.route('', methods=['GET'])
@require_auth
def list_databases():
    databases = get_databases_for_user(g.current_user)
    return jsonify({'success': True, 'databases': [d.to_dict() for d in databases]})


@databases_bp.route('', methods=['POST'])
@require_auth
def create_database_api():
    data = request.get_json(silent=True) or {}
    database, connection = create_database(
        g.current_user,
        data.get('name'),
        username=data.get('username'),
        password=data.get('password'),
    )
    audit_current_user("database_created", f"Created database {database.name} on port {database.postgres_port}")
    return jsonify({'success': True, 'database': database.to_dict(), 'connection': connection}), 201


@databases_bp.route('/<int:database_id>', methods=['GET'])
@require_auth
def get_database_api(database_id):
    database = _load_database(database_id)
    if not database:
        return jsonify({'success': False, 'error': 'Database not found'}), 404
    return jsonify({'success': True, 'database': database.to_dict()})


@databases_bp.route('/<int:database_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_database_api(database_id):
    database = db.session.get(Database, database_id)
    if not database:
        return jsonify({'success': False, 'error': 'Database not found'}), 404

    name = database.name
    delete_database(database)
    audit_current_user("database_deleted", f"Deleted database {name}")
    return jsonify({'success': True})


@databases_bp.route('/<int:database_id>/access', methods=['POST', 'DELETE'])
@require_auth
@require_admin
def database_access_api(database_id):
    database = db.session.get(Database, database_id)
    if not database:
        return jsonify({'success': False, 'error': 'Database not found'}), 404

    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    user = db.session.get(User, user_id) if isinstance(user_id, int) else None
    if not user:
        return jsonify({'success': False, 'error': 'User not found'}), 404

    if request.method == 'POST':
        grant_database_access(user.id, database.id)
        audit_current_user("database_access_granted", f"Granted {user.username} access to {database.name}")
    else:
        revoke_database_access(user.id, database.id)
        audit_current_user("database_access_revoked", f"Revoked {user.username} access to {database.name}")
    return jsonify({'success': True})
