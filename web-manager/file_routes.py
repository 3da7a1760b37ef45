#!/usr/bin/env python3
"""
File API Routes
Browse and edit site files; every path goes through the path sandbox
"""

import os
import shutil
import logging
from flask import Blueprint, request, jsonify, g, send_file
from werkzeug.utils import secure_filename

from audit import audit_current_user
from config import Config
from path_guard import (
    PathError,
    assert_path_within_base,
    ensure_user_path_access,
    resolve_path,
)
from permissions import require_auth, require_admin

logger = logging.getLogger(__name__)

files_bp = Blueprint('files', __name__, url_prefix='/api/files')

TRANSFER_ACTIONS = ('move', 'copy')


def _resolve_for_user(path, must_exist=True):
    """resolve_path plus the per-user jail of the current user"""
    sandboxed = resolve_path(path, must_exist=must_exist)
    user = g.current_user
    ensure_user_path_access(sandboxed.resolved_path, sandboxed.base_dir, user.username, user.is_admin)
    return sandboxed


def _resolve_write_target(path):
    """Resolve a file that may not exist yet without following a final symlink out"""
    sandboxed = _resolve_for_user(path, must_exist=False)
    if os.path.islink(sandboxed.resolved_path):
        sandboxed = _resolve_for_user(path, must_exist=True)
    return sandboxed


def _default_path():
    user = g.current_user
    return '.' if user.is_admin else user.username


def _validate_entry_name(name):
    if not name or not isinstance(name, str):
        raise PathError('Name is required', 400, PathError.INVALID_PATH)
    if name in ('.', '..') or '/' in name or '\\' in name or '\0' in name:
        raise PathError('Invalid name', 400, PathError.INVALID_PATH)
    return name


def _entry_info(directory, name):
    full_path = os.path.join(directory, name)
    try:
        stat = os.stat(full_path)
        size = stat.st_size
        modified = stat.st_mtime
    except OSError:
        size = 0
        modified = None
    return {
        'name': name,
        'isDirectory': os.path.isdir(full_path),
        'size': size,
        'modified': modified,
    }


def _unique_destination(directory, name):
    """name, or name-copy, name-copy-2, ... when taken"""
    stem, ext = os.path.splitext(name)
    candidate = os.path.join(directory, name)
    counter = 1
    while os.path.lexists(candidate):
        suffix = '-copy' if counter == 1 else f'-copy-{counter}'
        candidate = os.path.join(directory, f'{stem}{suffix}{ext}')
        counter += 1
    return candidate


@files_bp.route('', methods=['GET'])
@require_auth
def list_files():
    path = request.args.get('path') or _default_path()
    sandboxed = _resolve_for_user(path)
    if not os.path.isdir(sandboxed.resolved_path):
        return jsonify({'success': False, 'error': 'Not a directory'}), 400

    entries = [_entry_info(sandboxed.resolved_path, name)
               for name in sorted(os.listdir(sandboxed.resolved_path))]
    entries.sort(key=lambda e: (not e['isDirectory'], e['name'].lower()))
    return jsonify({'success': True, 'path': path, 'files': entries})


@files_bp.route('/content', methods=['GET'])
@require_auth
def get_file_content():
    path = request.args.get('path')
    sandboxed = _resolve_for_user(path)
    if os.path.isdir(sandboxed.resolved_path):
        return jsonify({'success': False, 'error': 'Path is a directory'}), 400

    try:
        with open(sandboxed.resolved_path, 'r', encoding='utf-8') as fh:
            content = fh.read()
    except UnicodeDecodeError:
        return jsonify({'success': False, 'error': 'File is not a text file'}), 415
    return jsonify({'success': True, 'content': content})


@files_bp.route('/content', methods=['POST'])
@require_auth
def save_file_content():
    data = request.get_json(silent=True) or {}
    path = data.get('filePath')
    content = data.get('content')
    if not isinstance(content, str):
        return jsonify({'success': False, 'error': 'Missing filePath or content'}), 400

    sandboxed = _resolve_write_target(path)
    if os.path.isdir(sandboxed.resolved_path):
        return jsonify({'success': False, 'error': 'Path is a directory'}), 400

    with open(sandboxed.resolved_path, 'w', encoding='utf-8') as fh:
        fh.write(content)
    audit_current_user("file_saved", f"Saved {path}")
    return jsonify({'success': True})


@files_bp.route('/create', methods=['POST'])
@require_auth
def create_entry():
    data = request.get_json(silent=True) or {}
    entry_type = data.get('type')
    if entry_type not in ('file', 'folder'):
        return jsonify({'success': False, 'error': 'type must be file or folder'}), 400

    name = _validate_entry_name(data.get('name'))
    parent = _resolve_for_user(data.get('basePath') or _default_path())
    if not os.path.isdir(parent.resolved_path):
        return jsonify({'success': False, 'error': 'Base path is not a directory'}), 400

    target = os.path.join(parent.resolved_path, name)
    assert_path_within_base(target, parent.resolved_path)

    try:
        if entry_type == 'folder':
            os.mkdir(target, 0o755)
        else:
            with open(target, 'x', encoding='utf-8'):
                pass
    except FileExistsError:
        return jsonify({'success': False, 'error': f'{name} already exists'}), 409

    audit_current_user("file_created", f"Created {entry_type} {name}")
    return jsonify({'success': True}), 201


@files_bp.route('/delete', methods=['DELETE'])
@require_auth
@require_admin
def delete_entry():
    data = request.get_json(silent=True) or {}
    path = data.get('path') or request.args.get('path')
    sandboxed = _resolve_for_user(path)
    if sandboxed.resolved_path == sandboxed.base_dir:
        return jsonify({'success': False, 'error': 'Refusing to delete the base directory'}), 400

    if os.path.isdir(sandboxed.resolved_path):
        shutil.rmtree(sandboxed.resolved_path)
    else:
        os.remove(sandboxed.resolved_path)

    audit_current_user("file_deleted", f"Deleted {path}")
    logger.info(f"Deleted {sandboxed.resolved_path}")
    return jsonify({'success': True})


@files_bp.route('/upload', methods=['POST'])
@require_auth
def upload_file():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'success': False, 'error': 'No file uploaded'}), 400

    filename = secure_filename(upload.filename)
    if not filename:
        return jsonify({'success': False, 'error': 'Invalid filename'}), 400

    parent = _resolve_for_user(request.form.get('path') or _default_path())
    if not os.path.isdir(parent.resolved_path):
        return jsonify({'success': False, 'error': 'Upload path is not a directory'}), 400

    target = os.path.join(parent.resolved_path, filename)
    assert_path_within_base(target, parent.resolved_path)
    if os.path.islink(target):
        return jsonify({'success': False, 'error': 'Refusing to overwrite a symlink'}), 400

    upload.save(target)
    size = os.path.getsize(target)
    if size > Config.MAX_UPLOAD_SIZE:
        os.remove(target)
        return jsonify({'success': False, 'error': 'File too large'}), 413

    audit_current_user("file_uploaded", f"Uploaded {filename} ({size} bytes)")
    return jsonify({'success': True, 'name': filename, 'size': size}), 201


@files_bp.route('/download', methods=['GET'])
@require_auth
def download_file():
    sandboxed = _resolve_for_user(request.args.get('path'))
    if os.path.isdir(sandboxed.resolved_path):
        return jsonify({'success': False, 'error': 'Path is a directory'}), 400
    return send_file(sandboxed.resolved_path, as_attachment=True,
                     download_name=os.path.basename(sandboxed.resolved_path))


@files_bp.route('/transfer', methods=['POST'])
@require_auth
def transfer_entry():
    data = request.get_json(silent=True) or {}
    action = data.get('action', 'move')
    if action not in TRANSFER_ACTIONS:
        return jsonify({'success': False, 'error': 'action must be move or copy'}), 400

    source = _resolve_for_user(data.get('sourcePath'))
    target_dir = _resolve_for_user(data.get('targetDir'))
    if source.resolved_path == source.base_dir:
        return jsonify({'success': False, 'error': 'Cannot transfer the base directory'}), 400
    if not os.path.isdir(target_dir.resolved_path):
        return jsonify({'success': False, 'error': 'Target is not a directory'}), 400
    if os.path.isdir(source.resolved_path) and (
            target_dir.resolved_path == source.resolved_path
            or target_dir.resolved_path.startswith(source.resolved_path + os.sep)):
        return jsonify({'success': False, 'error': 'Cannot transfer a folder into itself'}), 400

    destination = _unique_destination(target_dir.resolved_path, os.path.basename(source.resolved_path))
    assert_path_within_base(destination, target_dir.resolved_path)

    if action == 'move':
        shutil.move(source.resolved_path, destination)
    elif os.path.isdir(source.resolved_path):
        shutil.copytree(source.resolved_path, destination, symlinks=True)
    else:
        shutil.copy2(source.resolved_path, destination, follow_symlinks=False)

    audit_current_user("file_transferred", f"{action} {data.get('sourcePath')} -> {data.get('targetDir')}")
    return jsonify({'success': True, 'name': os.path.basename(destination)})
