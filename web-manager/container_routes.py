#!/usr/bin/env python3
"""
Container API Routes
Managed containers, lifecycle actions, logs and admin maintenance
"""

import logging
from flask import Blueprint, request, jsonify, g

from audit import audit_current_user
from docker_manager import DockerManager
from models import db, Site, Database, DatabasePermission, User
from orchestrator import assign_site_container, cleanup_orphans
from permissions import require_auth, require_admin
from site_helpers import ensure_all_user_folders

logger = logging.getLogger(__name__)

containers_bp = Blueprint('containers', __name__, url_prefix='/api')

MIN_SHORT_ID_LENGTH = 12


def _accessible_container_ids(user):
    site_ids = {s.container_id for s in Site.query.filter_by(user_id=user.id).all() if s.container_id}
    database_ids = {
        d.container_id
        for d in Database.query.join(DatabasePermission, DatabasePermission.database_id == Database.id)
        .filter(DatabasePermission.user_id == user.id).all()
        if d.container_id
    }
    return site_ids | database_ids


def _resolve_container_ref(user, container_ref):
    """
    Full container id behind container_ref if the user may act on it, else None.

    Admins pass references through unchanged. Other users must give the full
    id or an unambiguous prefix of at least MIN_SHORT_ID_LENGTH characters of
    a container they own.
    """
    if user.is_admin:
        return container_ref
    accessible = _accessible_container_ids(user)
    if container_ref in accessible:
        return container_ref
    if len(container_ref) < MIN_SHORT_ID_LENGTH:
        return None
    matches = [full_id for full_id in accessible if full_id.startswith(container_ref)]
    return matches[0] if len(matches) == 1 else None


@containers_bp.route('/containers', methods=['GET'])
@require_auth
def list_containers():
    user = g.current_user
    containers = DockerManager.list_containers(all_containers=True, managed_only=True)
    if not user.is_admin:
        allowed = _accessible_container_ids(user)
        containers = [c for c in containers if c['id'] in allowed]

    for container in containers:
        container['routed_port'] = DockerManager.get_routed_port(container['labels'])
    return jsonify({'success': True, 'containers': containers})


def _owned_container_or_404(container_ref):
    if not DockerManager.validate_container_ref(container_ref):
        return None, (jsonify({'success': False, 'error': 'Invalid container ID'}), 400)
    container_id = _resolve_container_ref(g.current_user, container_ref)
    if container_id is None:
        return None, (jsonify({'success': False, 'error': 'Container not found'}), 404)
    return container_id, None


@containers_bp.route('/containers/<container_ref>/<action>', methods=['POST'])
@require_auth
def container_action(container_ref, action):
    if action not in ('start', 'stop', 'restart'):
        return jsonify({'success': False, 'error': 'Invalid action'}), 400
    container_id, error = _owned_container_or_404(container_ref)
    if error:
        return error

    DockerManager.container_action(container_id, action)
    audit_current_user("container_action", f"{action} {container_id[:12]}")
    return jsonify({'success': True, 'message': f'Container {action} successful'})


@containers_bp.route('/containers/<container_ref>/logs', methods=['GET'])
@require_auth
def container_logs(container_ref):
    container_id, error = _owned_container_or_404(container_ref)
    if error:
        return error

    tail = request.args.get('tail', 100, type=int)
    tail = max(1, min(tail, 5000))
    logs = DockerManager.get_container_logs(container_id, tail=tail)
    return jsonify({'success': True, 'logs': logs})


@containers_bp.route('/containers/<container_ref>/inspect', methods=['GET'])
@require_auth
def container_inspect(container_ref):
    container_id, error = _owned_container_or_404(container_ref)
    if error:
        return error

    inspection = DockerManager.inspect_container(container_id)
    if not inspection:
        return jsonify({'success': False, 'error': 'Container not found'}), 404

    config = inspection.get('Config') or {}
    host_config = inspection.get('HostConfig') or {}
    network = inspection.get('NetworkSettings') or {}
    info = {
        'id': inspection.get('Id'),
        'name': (inspection.get('Name') or '').lstrip('/'),
        'image': config.get('Image'),
        'created': inspection.get('Created'),
        'state': inspection.get('State'),
        'labels': config.get('Labels') or {},
        'mounts': inspection.get('Mounts') or [],
        'networks': network.get('Networks') or {},
        'ports': network.get('Ports') or {},
        'restart_policy': host_config.get('RestartPolicy'),
    }
    return jsonify({'success': True, 'container': info})


@containers_bp.route('/containers/<container_ref>/stats', methods=['GET'])
@require_auth
def container_stats(container_ref):
    container_id, error = _owned_container_or_404(container_ref)
    if error:
        return error

    stats = DockerManager.get_container_stats(container_id)
    if stats is None:
        return jsonify({'success': False, 'error': 'Container not running or stats unavailable'}), 404
    return jsonify({'success': True, 'stats': stats})


@containers_bp.route('/containers/<container_id>/assign', methods=['POST'])
@require_auth
@require_admin
def assign_container(container_id):
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    target_user = db.session.get(User, user_id) if isinstance(user_id, int) else None
    if not target_user:
        return jsonify({'success': False, 'error': 'User not found'}), 404

    site = assign_site_container(container_id, target_user)
    audit_current_user("container_assigned", f"Assigned {site.domain} to {target_user.username}")
    return jsonify({'success': True, 'site': site.to_dict()})


@containers_bp.route('/db/cleanup', methods=['POST'])
@require_auth
@require_admin
def cleanup_database():
    removed = cleanup_orphans()
    audit_current_user("db_cleanup", f"Cleanup removed {removed}")
    return jsonify({'success': True, 'removed': removed})


@containers_bp.route('/system/user-folders', methods=['POST'])
@require_auth
@require_admin
def repair_user_folders():
    result = ensure_all_user_folders(User.query.all())
    return jsonify({'success': True, **result})
