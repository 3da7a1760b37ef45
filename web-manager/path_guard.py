"""
Sandboxed path resolution for site storage
Every tenant path is resolved against the configured site roots and proven,
after symlink resolution, to stay inside one of them
"""

import os
from collections import namedtuple

from config import Config

SandboxedPath = namedtuple('SandboxedPath', ['resolved_path', 'base_dir'])


class PathError(Exception):
    """Path rejected by the sandbox, carries an HTTP-equivalent status"""

    INVALID_PATH = 'invalid_path'
    ABSOLUTE_PATH_REJECTED = 'absolute_path_rejected'
    NULL_BYTE_REJECTED = 'null_byte_rejected'
    FORBIDDEN = 'forbidden'
    NOT_FOUND = 'not_found'
    NO_BASE_DIRECTORY = 'no_base_directory'

    def __init__(self, message, status, kind):
        super().__init__(message)
        self.message = message
        self.status = status
        self.kind = kind

    def to_dict(self):
        return {'success': False, 'error': self.message, 'code': self.kind}


def is_path_within_base(target_path, base_path):
    return target_path == base_path or target_path.startswith(base_path + os.sep)


def resolve_path(input_path, must_exist=True, base_dirs=None):
    """
    Resolve a path relative to the site roots.

    Roots are tried in order; the first one under which the path resolves
    and stays inside wins. When none does, an escape outranks a missing
    path, which outranks a plain invalid path.

    With must_exist=False only the parent directory is resolved and the
    last segment is re-joined, so a file that does not exist yet can still
    be addressed.
    """
    if not isinstance(input_path, str) or input_path.strip() == '':
        raise PathError('Path is required', 400, PathError.INVALID_PATH)

    if os.path.isabs(input_path):
        raise PathError('Absolute paths are not allowed', 400, PathError.ABSOLUTE_PATH_REJECTED)

    if '\0' in input_path:
        raise PathError('Invalid path', 400, PathError.NULL_BYTE_REJECTED)

    if base_dirs is None:
        base_dirs = Config.get_base_dirs()

    has_base = False
    saw_escape = False
    saw_not_found = False

    for base_dir in base_dirs:
        try:
            base_real = os.path.realpath(base_dir, strict=True)
        except OSError:
            continue
        has_base = True

        candidate = os.path.normpath(os.path.join(base_real, input_path))
        if not is_path_within_base(candidate, base_real):
            saw_escape = True
            continue

        try:
            if must_exist:
                target_real = os.path.realpath(candidate, strict=True)
            else:
                parent_real = os.path.realpath(os.path.dirname(candidate), strict=True)
                target_real = os.path.join(parent_real, os.path.basename(candidate))
        except OSError:
            saw_not_found = True
            continue

        if not is_path_within_base(target_real, base_real):
            saw_escape = True
            continue

        return SandboxedPath(target_real, base_real)

    if not has_base:
        raise PathError('Configured base directory not found', 500, PathError.NO_BASE_DIRECTORY)
    if saw_escape:
        raise PathError('Forbidden: Access outside allowed directory', 403, PathError.FORBIDDEN)
    if saw_not_found:
        raise PathError('Path not found', 404, PathError.NOT_FOUND)

    raise PathError('Invalid path', 400, PathError.INVALID_PATH)


def ensure_user_path_access(resolved_path, base_dir, username, is_admin):
    """Confine non-admin users to {base_dir}/{username}"""
    if is_admin:
        return

    user_dir = os.path.join(base_dir, username)
    try:
        user_dir_real = os.path.realpath(user_dir, strict=True)
    except OSError:
        raise PathError('User directory not found', 404, PathError.NOT_FOUND)

    if not is_path_within_base(resolved_path, user_dir_real):
        raise PathError('Forbidden: You can only access your own sites', 403, PathError.FORBIDDEN)


def assert_path_within_base(target_path, base_path):
    """String-only containment check for paths built by concatenation"""
    if not is_path_within_base(target_path, base_path):
        raise PathError('Invalid path', 400, PathError.INVALID_PATH)
