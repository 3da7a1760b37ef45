from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

db = SQLAlchemy()


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    is_admin = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_login = db.Column(db.DateTime, nullable=True)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def record_successful_login(self):
        self.last_login = datetime.utcnow()
        db.session.commit()

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'is_active': self.is_active,
            'is_admin': self.is_admin,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'last_login': self.last_login.isoformat() if self.last_login else None,
        }


class Site(db.Model):
    __tablename__ = 'sites'

    id = db.Column(db.Integer, primary_key=True)
    domain = db.Column(db.String(253), nullable=False)
    # Empty until the container has been created
    container_id = db.Column(db.String(128), unique=True, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    template_type = db.Column(db.String(20), nullable=False)  # static, php, node
    code_path = db.Column(db.String(1024), nullable=False)
    status = db.Column(db.String(20), default='stopped')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'domain': self.domain,
            'container_id': self.container_id,
            'user_id': self.user_id,
            'template_type': self.template_type,
            'code_path': self.code_path,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Database(db.Model):
    __tablename__ = 'databases'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(63), unique=True, nullable=False)
    container_id = db.Column(db.String(128), unique=True, nullable=True)
    postgres_port = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    permissions = db.relationship('DatabasePermission', backref='database', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'container_id': self.container_id,
            'postgres_port': self.postgres_port,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class DatabasePermission(db.Model):
    __tablename__ = 'database_permissions'
    __table_args__ = (db.UniqueConstraint('user_id', 'database_id'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    database_id = db.Column(db.Integer, db.ForeignKey('databases.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Folder(db.Model):
    __tablename__ = 'folders'
    __table_args__ = (db.UniqueConstraint('user_id', 'name'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    # Weak reference: a dangling parent is treated as root when the tree is built
    parent_folder_id = db.Column(db.Integer, nullable=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    depth = db.Column(db.Integer, default=0, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'parent_folder_id': self.parent_folder_id,
            'name': self.name,
            'depth': self.depth,
            'position': self.position,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class FolderContainer(db.Model):
    __tablename__ = 'folder_containers'

    id = db.Column(db.Integer, primary_key=True)
    folder_id = db.Column(db.Integer, db.ForeignKey('folders.id'), nullable=False, index=True)
    # One folder per container
    container_id = db.Column(db.String(128), unique=True, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class AuditLog(db.Model):
    __tablename__ = 'audit_log'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    username = db.Column(db.String(80), nullable=False)
    ip_address = db.Column(db.String(45), nullable=False)
    event_type = db.Column(db.String(50), nullable=False)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), default='success')
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'ip_address': self.ip_address,
            'event_type': self.event_type,
            'message': self.message,
            'status': self.status,
            'timestamp': self.timestamp.isoformat()
        }


def create_default_admin():
    """Create default admin user if no users exist"""
    if User.query.count() == 0:
        admin_user = User(
            username='admin',
            is_admin=True,
            is_active=True,
        )
        admin_user.set_password('admin')
        db.session.add(admin_user)
        db.session.commit()
        logger.warning("Default admin user created (username: admin, password: admin), change it immediately")
        return True
    return False
