#!/usr/bin/env python3
"""
Folder API Routes
Folder tree, nesting and container filing for the current user
"""

import logging
from flask import Blueprint, request, jsonify, g

from audit import audit_current_user
from folder_store import (
    FolderError,
    create_folder,
    delete_folder,
    get_containers_by_folder,
    get_folder_by_id,
    get_folder_tree,
    move_container_to_folder,
    move_folder_to_parent,
    rename_folder,
    reorder_container_in_folder,
    reorder_folder,
    unlink_container_from_folder,
)
from models import Site
from permissions import require_auth

logger = logging.getLogger(__name__)

folders_bp = Blueprint('folders', __name__, url_prefix='/api/folders')


def _parse_optional_id(value):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise FolderError('Invalid parent folder ID', 400)


def _load_folder(folder_id, allow_admin=False):
    """Fetch a folder the current user may act on"""
    folder = get_folder_by_id(folder_id)
    if not folder:
        raise FolderError('Folder not found', 404)
    user = g.current_user
    if folder.user_id != user.id and not (allow_admin and user.is_admin):
        raise FolderError('You do not have permission to access this folder', 403)
    return folder


@folders_bp.route('', methods=['GET'])
@require_auth
def list_folders():
    return jsonify({'success': True, 'folders': get_folder_tree(g.current_user.id)})


@folders_bp.route('', methods=['POST'])
@require_auth
def create_folder_api():
    data = request.get_json(silent=True) or {}
    parent_id = _parse_optional_id(data.get('parentId'))
    folder = create_folder(g.current_user.id, data.get('name'), parent_id)
    audit_current_user("folder_created", f"Created folder {folder.name}")
    return jsonify({'success': True, 'folder': folder.to_dict()}), 201


@folders_bp.route('/<int:folder_id>', methods=['GET'])
@require_auth
def get_folder_api(folder_id):
    folder = _load_folder(folder_id, allow_admin=True)
    return jsonify({'success': True, 'folder': folder.to_dict()})


@folders_bp.route('/<int:folder_id>', methods=['PUT'])
@require_auth
def rename_folder_api(folder_id):
    _load_folder(folder_id)
    data = request.get_json(silent=True) or {}
    folder = rename_folder(folder_id, data.get('name'))
    return jsonify({'success': True, 'folder': folder.to_dict()})


@folders_bp.route('/<int:folder_id>', methods=['DELETE'])
@require_auth
def delete_folder_api(folder_id):
    # Owner only, admins cannot delete other users' folders
    folder = _load_folder(folder_id)
    name = folder.name
    moved = delete_folder(folder_id)
    audit_current_user("folder_deleted", f"Deleted folder {name}, {moved} containers moved to Default")
    return jsonify({'success': True, 'movedContainers': moved})


@folders_bp.route('/<int:folder_id>/move', methods=['PUT'])
@require_auth
def move_folder_api(folder_id):
    _load_folder(folder_id, allow_admin=True)
    data = request.get_json(silent=True) or {}
    if 'newParentId' not in data:
        raise FolderError('newParentId is required', 400)
    folder = move_folder_to_parent(folder_id, _parse_optional_id(data.get('newParentId')))
    return jsonify({'success': True, 'folder': folder.to_dict()})


@folders_bp.route('/<int:folder_id>/reorder', methods=['PUT'])
@require_auth
def reorder_folder_api(folder_id):
    _load_folder(folder_id, allow_admin=True)
    data = request.get_json(silent=True) or {}
    new_position = data.get('newPosition')
    if not isinstance(new_position, int) or isinstance(new_position, bool):
        raise FolderError('newPosition is required', 400)
    folder = reorder_folder(folder_id, new_position)
    return jsonify({'success': True, 'folder': folder.to_dict()})


@folders_bp.route('/<int:folder_id>/containers', methods=['GET'])
@require_auth
def list_folder_containers(folder_id):
    _load_folder(folder_id, allow_admin=True)
    return jsonify({'success': True, 'containerIds': get_containers_by_folder(folder_id)})


@folders_bp.route('/<int:folder_id>/containers', methods=['POST'])
@require_auth
def add_folder_container(folder_id):
    _load_folder(folder_id)
    data = request.get_json(silent=True) or {}
    container_id = data.get('containerId')
    if not container_id or not isinstance(container_id, str):
        raise FolderError('Container ID is required', 400)

    site = Site.query.filter_by(container_id=container_id).first()
    if site and site.user_id != g.current_user.id and not g.current_user.is_admin:
        raise FolderError('You do not have permission to file this container', 403)

    move_container_to_folder(container_id, folder_id)
    return jsonify({'success': True})


@folders_bp.route('/<int:folder_id>/containers', methods=['DELETE'])
@require_auth
def remove_folder_container(folder_id):
    _load_folder(folder_id)
    container_id = request.args.get('containerId')
    if not container_id:
        raise FolderError('Container ID is required', 400)
    unlink_container_from_folder(folder_id, container_id)
    return jsonify({'success': True})


@folders_bp.route('/<int:folder_id>/containers/reorder', methods=['PUT'])
@require_auth
def reorder_folder_container(folder_id):
    _load_folder(folder_id, allow_admin=True)
    data = request.get_json(silent=True) or {}
    container_id = data.get('containerId')
    new_position = data.get('newPosition')
    if not container_id or not isinstance(new_position, int) or isinstance(new_position, bool):
        raise FolderError('containerId and newPosition are required', 400)
    reorder_container_in_folder(folder_id, container_id, new_position)
    return jsonify({'success': True})
