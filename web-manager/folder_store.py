"""
Folder persistence operations
Every write validates against folder_tree before touching the database
"""

import re
import logging

from sqlalchemy import func

from models import db, Folder, FolderContainer
from folder_tree import (
    MAX_FOLDER_DEPTH,
    build_folder_tree,
    calculate_depth,
    can_nest_folder,
    get_descendant_ids,
)

logger = logging.getLogger(__name__)

DEFAULT_FOLDER_NAME = 'Default'
FOLDER_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9\s\-_]+$')


class FolderError(Exception):
    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status


def validate_folder_name(name):
    if not name or not isinstance(name, str) or not name.strip():
        raise FolderError('Folder name is required', 400)
    name = name.strip()
    if len(name) > 100:
        raise FolderError('Folder name is too long', 400)
    if not FOLDER_NAME_PATTERN.match(name):
        raise FolderError('Folder name can only contain letters, numbers, spaces, dashes, and underscores', 400)
    return name


def get_folders_by_user(user_id):
    folders = Folder.query.filter_by(user_id=user_id).order_by(Folder.position, Folder.id).all()
    return [f.to_dict() for f in folders]


def get_folder_by_id(folder_id):
    return db.session.get(Folder, folder_id)


def _require_folder(folder_id):
    folder = get_folder_by_id(folder_id)
    if not folder:
        raise FolderError('Folder not found', 404)
    return folder


def _siblings(user_id, parent_folder_id):
    return Folder.query.filter_by(user_id=user_id, parent_folder_id=parent_folder_id) \
        .order_by(Folder.position, Folder.id).all()


def _next_folder_position(user_id, parent_folder_id):
    current = db.session.query(func.max(Folder.position)) \
        .filter_by(user_id=user_id, parent_folder_id=parent_folder_id).scalar()
    return 0 if current is None else current + 1


def _renumber(items):
    for index, item in enumerate(items):
        item.position = index


def _name_taken(user_id, name, exclude_id=None):
    query = Folder.query.filter_by(user_id=user_id, name=name)
    if exclude_id is not None:
        query = query.filter(Folder.id != exclude_id)
    return query.first() is not None


def get_or_create_default_folder(user_id):
    folder = Folder.query.filter_by(user_id=user_id, name=DEFAULT_FOLDER_NAME).first()
    if folder:
        return folder

    folder = Folder(
        user_id=user_id,
        name=DEFAULT_FOLDER_NAME,
        parent_folder_id=None,
        depth=0,
        position=_next_folder_position(user_id, None),
    )
    db.session.add(folder)
    db.session.commit()
    logger.info(f"Created Default folder for user {user_id}")
    return folder


def create_folder(user_id, name, parent_folder_id=None):
    name = validate_folder_name(name)

    if parent_folder_id is not None:
        parent = get_folder_by_id(parent_folder_id)
        if not parent:
            raise FolderError('Parent folder not found', 404)
        if parent.user_id != user_id:
            raise FolderError('You do not have permission to use this parent folder', 403)

    all_folders = get_folders_by_user(user_id)
    depth = calculate_depth(parent_folder_id, all_folders)
    if depth > MAX_FOLDER_DEPTH:
        raise FolderError(f'Maximum nesting depth is {MAX_FOLDER_DEPTH + 1} layers', 400)

    if _name_taken(user_id, name):
        raise FolderError('A folder with this name already exists', 409)

    folder = Folder(
        user_id=user_id,
        name=name,
        parent_folder_id=parent_folder_id,
        depth=depth,
        position=_next_folder_position(user_id, parent_folder_id),
    )
    db.session.add(folder)
    db.session.commit()
    return folder


def rename_folder(folder_id, name):
    folder = _require_folder(folder_id)
    if folder.name == DEFAULT_FOLDER_NAME:
        raise FolderError('Cannot rename the Default folder', 400)

    name = validate_folder_name(name)
    if name == DEFAULT_FOLDER_NAME:
        raise FolderError('The name Default is reserved', 400)
    if _name_taken(folder.user_id, name, exclude_id=folder.id):
        raise FolderError('A folder with this name already exists', 409)

    folder.name = name
    db.session.commit()
    return folder


def move_folder_to_parent(folder_id, new_parent_id):
    """Re-parent a folder, keeping depth consistent for its whole subtree"""
    folder = _require_folder(folder_id)
    if folder.name == DEFAULT_FOLDER_NAME:
        raise FolderError('Cannot move the Default folder', 400)

    if new_parent_id is not None:
        parent = get_folder_by_id(new_parent_id)
        if not parent:
            raise FolderError('Parent folder not found', 404)
        if parent.user_id != folder.user_id:
            raise FolderError('Cannot move a folder under another user\'s folder', 403)

    all_folders = get_folders_by_user(folder.user_id)
    validation = can_nest_folder(folder.id, new_parent_id, all_folders)
    if not validation.valid:
        raise FolderError(validation.error, 400)

    if folder.parent_folder_id == new_parent_id:
        return folder

    old_parent_id = folder.parent_folder_id
    new_depth = calculate_depth(new_parent_id, all_folders)
    delta = new_depth - folder.depth

    folder.position = _next_folder_position(folder.user_id, new_parent_id)
    folder.parent_folder_id = new_parent_id
    folder.depth = new_depth

    descendant_ids = get_descendant_ids(folder.id, all_folders)
    if descendant_ids and delta:
        for descendant in Folder.query.filter(Folder.id.in_(descendant_ids)).all():
            descendant.depth = descendant.depth + delta

    db.session.flush()
    _renumber(_siblings(folder.user_id, old_parent_id))
    db.session.commit()
    logger.info(f"Moved folder {folder.id} from parent {old_parent_id} to {new_parent_id}")
    return folder


def reorder_folder(folder_id, new_position):
    folder = _require_folder(folder_id)
    siblings = [f for f in _siblings(folder.user_id, folder.parent_folder_id) if f.id != folder.id]
    new_position = max(0, min(int(new_position), len(siblings)))
    siblings.insert(new_position, folder)
    _renumber(siblings)
    db.session.commit()
    return folder


def delete_folder(folder_id):
    """
    Delete a folder and every folder below it.

    Containers filed anywhere in the deleted subtree are moved to the
    owner's Default folder, appended after its current containers.
    """
    folder = _require_folder(folder_id)
    if folder.name == DEFAULT_FOLDER_NAME:
        raise FolderError('Cannot delete the Default folder', 400)

    user_id = folder.user_id
    parent_id = folder.parent_folder_id
    default_folder = get_or_create_default_folder(user_id)

    all_folders = get_folders_by_user(user_id)
    doomed_ids = [folder.id] + get_descendant_ids(folder.id, all_folders)
    depth_by_id = {f['id']: f['depth'] for f in all_folders}

    memberships = FolderContainer.query.filter(FolderContainer.folder_id.in_(doomed_ids)).all()
    memberships.sort(key=lambda m: (depth_by_id.get(m.folder_id, 0), doomed_ids.index(m.folder_id), m.position))

    next_position = _next_container_position(default_folder.id)
    for membership in memberships:
        membership.folder_id = default_folder.id
        membership.position = next_position
        next_position += 1
    db.session.flush()

    Folder.query.filter(Folder.id.in_(doomed_ids)).delete(synchronize_session=False)
    db.session.flush()
    _renumber(_siblings(user_id, parent_id))
    db.session.commit()
    logger.info(f"Deleted folders {doomed_ids}, moved {len(memberships)} containers to Default")
    return len(memberships)


def _next_container_position(folder_id):
    current = db.session.query(func.max(FolderContainer.position)).filter_by(folder_id=folder_id).scalar()
    return 0 if current is None else current + 1


def _memberships(folder_id):
    return FolderContainer.query.filter_by(folder_id=folder_id) \
        .order_by(FolderContainer.position, FolderContainer.id).all()


def get_containers_by_folder(folder_id):
    return [m.container_id for m in _memberships(folder_id)]


def get_folder_for_container(container_id):
    membership = FolderContainer.query.filter_by(container_id=container_id).first()
    return membership.folder_id if membership else None


def move_container_to_folder(container_id, folder_id):
    """File a container into folder_id, removing it from any other folder"""
    _require_folder(folder_id)
    existing = FolderContainer.query.filter_by(container_id=container_id).first()
    if existing and existing.folder_id == folder_id:
        return existing

    old_folder_id = None
    if existing:
        old_folder_id = existing.folder_id
        db.session.delete(existing)
        db.session.flush()

    membership = FolderContainer(
        folder_id=folder_id,
        container_id=container_id,
        position=_next_container_position(folder_id),
    )
    db.session.add(membership)
    db.session.flush()
    if old_folder_id is not None:
        _renumber(_memberships(old_folder_id))
    db.session.commit()
    return membership


def unlink_container_from_folder(folder_id, container_id):
    membership = FolderContainer.query.filter_by(folder_id=folder_id, container_id=container_id).first()
    if not membership:
        return False
    db.session.delete(membership)
    db.session.flush()
    _renumber(_memberships(folder_id))
    db.session.commit()
    return True


def unlink_container(container_id):
    """Remove a container from whichever folder holds it"""
    folder_id = get_folder_for_container(container_id)
    if folder_id is None:
        return False
    return unlink_container_from_folder(folder_id, container_id)


def reorder_container_in_folder(folder_id, container_id, new_position):
    memberships = _memberships(folder_id)
    target = next((m for m in memberships if m.container_id == container_id), None)
    if target is None:
        raise FolderError('Container is not in this folder', 404)

    memberships.remove(target)
    new_position = max(0, min(int(new_position), len(memberships)))
    memberships.insert(new_position, target)
    _renumber(memberships)
    db.session.commit()


def get_folder_tree(user_id):
    get_or_create_default_folder(user_id)
    folders = get_folders_by_user(user_id)
    folder_ids = [f['id'] for f in folders]

    containers_by_folder_id = {}
    if folder_ids:
        memberships = FolderContainer.query.filter(FolderContainer.folder_id.in_(folder_ids)) \
            .order_by(FolderContainer.position, FolderContainer.id).all()
        for membership in memberships:
            containers_by_folder_id.setdefault(membership.folder_id, []).append(membership.container_id)

    return build_folder_tree(folders, containers_by_folder_id)
