"""
Site and database provisioning
Ties the jail, the container templates, Docker and the database rows together
"""

import logging
import re
import threading
from datetime import datetime, timedelta

from sqlalchemy import func, select

from config import Config
from docker_manager import DockerManager, DockerError
from folder_store import (
    get_folder_by_id,
    get_or_create_default_folder,
    move_container_to_folder,
    unlink_container,
)
from models import db, Site, Database, DatabasePermission, FolderContainer, User
from provision_templates import (
    SITE_TEMPLATE_TYPES,
    TEMPLATE_IMAGES,
    generate_database_template,
    generate_site_template,
)
from site_helpers import create_default_index_file, create_site_directory

logger = logging.getLogger(__name__)

DOMAIN_PATTERN = re.compile(
    r'^[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)*$'
)

# Serializes provisioning per domain within this process only; several
# worker processes can still race between the existence check and the insert.
DOMAIN_LOCK_STRIPES = 64
_domain_locks = [threading.Lock() for _ in range(DOMAIN_LOCK_STRIPES)]
_database_lock = threading.Lock()


class ProvisionError(Exception):
    def __init__(self, message, status=500):
        super().__init__(message)
        self.message = message
        self.status = status


def _domain_lock(domain):
    return _domain_locks[hash(domain.lower()) % DOMAIN_LOCK_STRIPES]


def validate_domain(domain):
    if not domain or not isinstance(domain, str):
        raise ProvisionError('Missing required fields: domain, template_type', 400)
    domain = domain.strip()
    if len(domain) > 253 or not DOMAIN_PATTERN.match(domain):
        raise ProvisionError(f'Invalid domain: {domain}', 400)
    return domain


def get_sites_for_user(user):
    query = Site.query.order_by(Site.created_at.desc(), Site.id.desc())
    if not user.is_admin:
        query = query.filter_by(user_id=user.id)
    return query.all()


def get_site_for_user(site_id, user):
    site = db.session.get(Site, site_id)
    if not site or (not user.is_admin and site.user_id != user.id):
        return None
    return site


def create_site(owner, domain, template_type, folder_id=None, create_default_files=True, port=None):
    """
    Provision a site for owner.

    The site row is inserted first so its id can be stamped on the
    container; if Docker fails the row is removed again.
    """
    domain = validate_domain(domain)
    if template_type not in SITE_TEMPLATE_TYPES:
        raise ProvisionError('Invalid template_type. Must be: static, php, or node', 400)

    if port is not None:
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ProvisionError('Invalid port', 400)
        if not 1 <= port <= 65535:
            raise ProvisionError('Invalid port', 400)

    if folder_id is not None:
        folder = get_folder_by_id(folder_id)
        if not folder:
            raise ProvisionError('Folder not found', 404)
        if folder.user_id != owner.id:
            raise ProvisionError('You do not have permission to use this folder', 403)
    else:
        folder = get_or_create_default_folder(owner.id)

    with _domain_lock(domain):
        existing = Site.query.filter(func.lower(Site.domain) == domain.lower()).first()
        if existing:
            raise ProvisionError(f'A site for {domain} already exists', 409)

        code_path = create_site_directory(owner.username, domain)
        if create_default_files:
            create_default_index_file(code_path, domain, template_type)

        site = Site(
            domain=domain,
            user_id=owner.id,
            template_type=template_type,
            code_path=code_path,
            status='provisioning',
        )
        db.session.add(site)
        db.session.commit()

        spec = generate_site_template(template_type, domain, code_path, site.id, owner.id,
                                      folder_id=folder.id, port=port)
        try:
            DockerManager.pull_image(spec.image)
            container_id = DockerManager.create_container(spec)
        except DockerError as e:
            logger.error(f"Error creating site {domain}: {e.message}")
            db.session.delete(site)
            db.session.commit()
            raise ProvisionError(e.message, 500)

        site.container_id = container_id
        site.status = 'running'
        db.session.commit()

    move_container_to_folder(container_id, folder.id)
    logger.info(f"Site created: {domain} ({template_type}) for {owner.username} at {code_path}")
    return site


def delete_site(site):
    if site.container_id:
        try:
            DockerManager.remove_container(site.container_id, force=True)
        except DockerError as e:
            # The row goes regardless; a leftover container shows up as unmanaged
            logger.error(f"Error removing container {site.container_id}: {e.message}")
        unlink_container(site.container_id)

    domain = site.domain
    db.session.delete(site)
    db.session.commit()
    logger.info(f"Site deleted: {domain}")


def assign_site_container(container_id, target_user):
    """Hand a site container over to another user, filed in their Default folder"""
    site = Site.query.filter_by(container_id=container_id).first()
    if not site:
        raise ProvisionError('Container is not a managed site', 404)

    site.user_id = target_user.id
    db.session.commit()

    default_folder = get_or_create_default_folder(target_user.id)
    move_container_to_folder(container_id, default_folder.id)
    logger.info(f"Site {site.domain} assigned to {target_user.username}")
    return site


def get_databases_for_user(user):
    query = Database.query
    if not user.is_admin:
        query = query.join(DatabasePermission, DatabasePermission.database_id == Database.id) \
            .filter(DatabasePermission.user_id == user.id)
    return query.order_by(Database.created_at.desc(), Database.id.desc()).all()


def has_database_access(user, database_id):
    if user.is_admin:
        return True
    return DatabasePermission.query.filter_by(user_id=user.id, database_id=database_id).first() is not None


def get_next_available_port():
    max_port = db.session.query(func.max(Database.postgres_port)).scalar()
    return max_port + 1 if max_port else Config.POSTGRES_BASE_PORT


def grant_database_access(user_id, database_id):
    if DatabasePermission.query.filter_by(user_id=user_id, database_id=database_id).first():
        return
    db.session.add(DatabasePermission(user_id=user_id, database_id=database_id))
    db.session.commit()


def revoke_database_access(user_id, database_id):
    DatabasePermission.query.filter_by(user_id=user_id, database_id=database_id).delete()
    db.session.commit()


def create_database(owner, name, username=None, password=None):
    """Provision a Postgres container and return (database, connection info)"""
    if not name or not isinstance(name, str):
        raise ProvisionError('Database name is required', 400)

    sanitized_name = re.sub(r'[^a-zA-Z0-9_]', '_', name.strip())

    with _database_lock:
        if Database.query.filter_by(name=sanitized_name).first():
            raise ProvisionError(f'Database {sanitized_name} already exists', 409)

        port = get_next_available_port()
        spec = generate_database_template(sanitized_name, port, username=username, password=password)

        try:
            DockerManager.pull_image(TEMPLATE_IMAGES['postgres'])
            container_id = DockerManager.create_container(spec)
        except DockerError as e:
            logger.error(f"Error creating database {sanitized_name}: {e.message}")
            raise ProvisionError(e.message, 500)

        database = Database(name=sanitized_name, container_id=container_id, postgres_port=port)
        db.session.add(database)
        db.session.commit()

    grant_database_access(owner.id, database.id)

    connection = {
        'host': 'localhost',
        'port': port,
        'database': sanitized_name,
        'username': spec.labels.get('docklite.username'),
        'password': spec.labels.get('docklite.password'),
    }
    logger.info(f"Database created: {sanitized_name} on port {port}")
    return database, connection


def delete_database(database):
    if database.container_id:
        try:
            DockerManager.remove_container(database.container_id, force=True)
        except DockerError as e:
            logger.error(f"Error removing container {database.container_id}: {e.message}")
        unlink_container(database.container_id)

    name = database.name
    db.session.delete(database)
    db.session.commit()
    logger.info(f"Database deleted: {name}")


def cleanup_orphans():
    """Drop rows whose container no longer exists"""
    live_ids = {c['id'] for c in DockerManager.list_containers(all_containers=True)}
    grace_cutoff = datetime.utcnow() - timedelta(seconds=Config.PROVISIONING_GRACE_PERIOD)

    removed_sites = 0
    for site in Site.query.all():
        if site.status == 'provisioning' and site.created_at and site.created_at > grace_cutoff:
            continue
        if not site.container_id or site.container_id not in live_ids:
            db.session.delete(site)
            removed_sites += 1

    removed_databases = 0
    for database in Database.query.all():
        if not database.container_id or database.container_id not in live_ids:
            db.session.delete(database)
            removed_databases += 1

    removed_memberships = 0
    for membership in FolderContainer.query.all():
        if membership.container_id not in live_ids:
            db.session.delete(membership)
            removed_memberships += 1
    db.session.flush()

    user_ids = select(User.id)
    database_ids = select(Database.id)
    removed_permissions = DatabasePermission.query.filter(
        ~DatabasePermission.user_id.in_(user_ids) | ~DatabasePermission.database_id.in_(database_ids)
    ).delete(synchronize_session=False)

    db.session.commit()
    logger.info(f"Cleanup removed {removed_sites} sites, {removed_databases} databases, "
                f"{removed_memberships} folder entries, {removed_permissions} permissions")
    return {
        'sites': removed_sites,
        'databases': removed_databases,
        'folder_entries': removed_memberships,
        'permissions': removed_permissions,
    }
