"""
User accounts
Usernames double as directory names under the site root, so they are kept
to a filesystem-safe alphabet
"""

import re
import logging

from config import Config
from folder_store import get_or_create_default_folder, move_container_to_folder
from models import db, User, Site, Folder, FolderContainer, DatabasePermission, AuditLog
from path_guard import PathError
from site_helpers import ensure_user_folder

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9_.-]{2,31}$')


class UserError(Exception):
    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status


def validate_username(username):
    if not username or not isinstance(username, str):
        raise UserError('Username and password are required', 400)
    username = username.strip()
    if not USERNAME_PATTERN.match(username):
        raise UserError('Username must be 3-32 characters: letters, numbers, dot, dash, underscore', 400)
    return username


def validate_password(password):
    if not password or not isinstance(password, str):
        raise UserError('Username and password are required', 400)
    if len(password) < Config.MIN_PASSWORD_LENGTH:
        raise UserError(f'Password must be at least {Config.MIN_PASSWORD_LENGTH} characters', 400)
    return password


def list_users():
    return User.query.order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(username, password, is_admin=False):
    """Create an account and its directory under the site root"""
    username = validate_username(username)
    validate_password(password)

    if User.query.filter_by(username=username).first():
        raise UserError('Username already exists', 409)

    user = User(username=username, is_admin=bool(is_admin), is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    # The account stands even without a directory; the admin repair pass recreates it
    try:
        user_path = ensure_user_folder(username)
        logger.info(f"Created folder for user {username}: {user_path}")
    except (OSError, PathError) as e:
        logger.error(f"Failed to create folder for user {username}: {e}")

    get_or_create_default_folder(user.id)
    return user


def change_password(user, new_password, current_password=None):
    """Set a new password; current_password is checked when given"""
    if current_password is not None and not user.check_password(current_password):
        raise UserError('Current password is incorrect', 403)
    validate_password(new_password)
    user.set_password(new_password)
    db.session.commit()
    logger.info(f"Password changed for user {user.username}")


def delete_user(user, transfer_to):
    """
    Delete user, handing their sites and filed containers to transfer_to.

    Transferred containers are appended to transfer_to's Default folder.
    Folders and database grants of the deleted user are removed.
    """
    if user.id == transfer_to.id:
        raise UserError('You cannot delete your own account', 400)

    username = user.username
    default_folder = get_or_create_default_folder(transfer_to.id)

    folder_ids = [f.id for f in Folder.query.filter_by(user_id=user.id).all()]
    filed = []
    if folder_ids:
        filed = [m.container_id for m in FolderContainer.query.filter(FolderContainer.folder_id.in_(folder_ids))
                 .order_by(FolderContainer.position, FolderContainer.id).all()]

    for site in Site.query.filter_by(user_id=user.id).all():
        site.user_id = transfer_to.id
    db.session.commit()

    for container_id in filed:
        move_container_to_folder(container_id, default_folder.id)

    if folder_ids:
        Folder.query.filter(Folder.id.in_(folder_ids)).delete(synchronize_session=False)
    DatabasePermission.query.filter_by(user_id=user.id).delete(synchronize_session=False)
    AuditLog.query.filter_by(user_id=user.id).update({'user_id': None}, synchronize_session=False)
    db.session.delete(user)
    db.session.commit()
    logger.info(f"Deleted user {username}, transferred {len(filed)} containers to {transfer_to.username}")
    return len(filed)
