#!/usr/bin/env python3
"""
Site API Routes
"""

import logging
from flask import Blueprint, request, jsonify, g

from audit import audit_current_user
from models import db, User
from orchestrator import (
    ProvisionError,
    create_site,
    delete_site,
    get_site_for_user,
    get_sites_for_user,
)
from permissions import require_auth

logger = logging.getLogger(__name__)

sites_bp = Blueprint('sites', __name__, url_prefix='/api/sites')


def _resolve_owner(data):
    """Admins may create sites for another user"""
    user = g.current_user
    requested = data.get('user_id')
    if requested is None or not user.is_admin:
        return user
    owner = db.session.get(User, requested) if isinstance(requested, int) else None
    if not owner:
        raise ProvisionError('User not found', 404)
    return owner


@sites_bp.route('', methods=['GET'])
@require_auth
def list_sites():
    sites = get_sites_for_user(g.current_user)
    return jsonify({'success': True, 'sites': [s.to_dict() for s in sites]})


@sites_bp.route('', methods=['POST'])
@require_auth
def create_site_api():
    data = request.get_json(silent=True) or {}
    domain = data.get('domain')
    template_type = data.get('template_type')
    if not domain or not template_type:
        return jsonify({'success': False, 'error': 'Missing required fields: domain, template_type'}), 400

    owner = _resolve_owner(data)
    folder_id = data.get('folder_id')
    if folder_id is not None and not isinstance(folder_id, int):
        return jsonify({'success': False, 'error': 'Invalid folder_id'}), 400

    try:
        site = create_site(
            owner,
            domain,
            template_type,
            folder_id=folder_id,
            create_default_files=data.get('include_index', True) is not False,
            port=data.get('port'),
        )
    except ProvisionError as e:
        audit_current_user("site_created", f"Failed to create {domain}: {e.message}", "failed")
        raise

    audit_current_user("site_created", f"Created {template_type} site {site.domain} for {owner.username}")
    return jsonify({'success': True, 'site': site.to_dict()}), 201


@sites_bp.route('/<int:site_id>', methods=['GET'])
@require_auth
def get_site_api(site_id):
    site = get_site_for_user(site_id, g.current_user)
    if not site:
        return jsonify({'success': False, 'error': 'Site not found'}), 404
    return jsonify({'success': True, 'site': site.to_dict()})


@sites_bp.route('/<int:site_id>', methods=['DELETE'])
@require_auth
def delete_site_api(site_id):
    site = get_site_for_user(site_id, g.current_user)
    if not site:
        return jsonify({'success': False, 'error': 'Site not found'}), 404

    domain = site.domain
    delete_site(site)
    audit_current_user("site_deleted", f"Deleted site {domain}")
    return jsonify({'success': True})
