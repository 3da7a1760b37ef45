import os
import secrets
import threading

_dev_secret = None
_dev_secret_lock = threading.Lock()


def get_secret_key():
    """
    Return the session secret.

    SECRET_KEY from the environment wins. Without it a random development
    secret is generated once per process and reused afterwards.
    """
    global _dev_secret
    configured = os.environ.get('SECRET_KEY')
    if configured:
        return configured
    with _dev_secret_lock:
        if _dev_secret is None:
            _dev_secret = secrets.token_hex(32)
        return _dev_secret


class Config:
    # Site storage roots, tried in order (configured first, legacy second)
    LEGACY_BASE_DIR = '/var/www/sites'
    DOCKLITE_DATA_DIR = os.environ.get('DOCKLITE_DATA_DIR') or ''

    # Database configuration with multiple fallback options
    DATABASE_URL = os.environ.get('DATABASE_URL') or ''
    DB_HOST = os.environ.get('DB_HOST') or ''
    DB_NAME = os.environ.get('DB_NAME') or 'docklite'
    DB_USER = os.environ.get('DB_USER') or 'root'
    DB_PASS = os.environ.get('DB_PASS') or ''
    SQLITE_PATH = os.environ.get('SQLITE_PATH') or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), 'data', 'docklite.db'
    )

    @staticmethod
    def get_database_uri():
        """
        Generate database URI: explicit DATABASE_URL, then MySQL when DB_HOST
        is set, then the local SQLite file
        """
        if Config.DATABASE_URL:
            return Config.DATABASE_URL

        if Config.DB_HOST:
            if Config.DB_PASS:
                return f'mysql+pymysql://{Config.DB_USER}:{Config.DB_PASS}@{Config.DB_HOST}/{Config.DB_NAME}'
            # auth_socket style setups have no password
            return f'mysql+pymysql://{Config.DB_USER}@{Config.DB_HOST}/{Config.DB_NAME}'

        return f'sqlite:///{Config.SQLITE_PATH}'

    @staticmethod
    def get_base_dirs():
        """Ordered list of candidate site roots"""
        base_dir = os.environ.get('DOCKLITE_DATA_DIR') or Config.DOCKLITE_DATA_DIR or Config.LEGACY_BASE_DIR
        bases = [base_dir]
        if base_dir != Config.LEGACY_BASE_DIR:
            bases.append(Config.LEGACY_BASE_DIR)
        return bases

    SQLALCHEMY_DATABASE_URI = None
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Docker configuration
    DOCKER_BINARY = os.environ.get('DOCKER_BINARY') or 'docker'
    DOCKER_TIMEOUT = int(os.environ.get('DOCKER_TIMEOUT', '60'))
    DOCKER_PULL_TIMEOUT = int(os.environ.get('DOCKER_PULL_TIMEOUT', '600'))
    TRAEFIK_NETWORK = os.environ.get('TRAEFIK_NETWORK') or 'ioi_docker_imoverit_network'
    POSTGRES_BASE_PORT = int(os.environ.get('POSTGRES_BASE_PORT', '5432'))

    # Folder hierarchy: 0 = root, 1 = one level of nesting
    MAX_FOLDER_DEPTH = 1

    # Rows younger than this may still be mid-provisioning, cleanup leaves them alone
    PROVISIONING_GRACE_PERIOD = int(os.environ.get('PROVISIONING_GRACE_PERIOD', '600'))

    # Security Configuration
    SESSION_TIMEOUT = 3600  # 1 hour
    MIN_PASSWORD_LENGTH = 10
    ENABLE_AUDIT_LOG = True
    MAX_UPLOAD_SIZE = 50 * 1024 * 1024

    LOG_FILE = os.environ.get('LOG_FILE') or 'docklite.log'

# Set the database URI after class definition
Config.SQLALCHEMY_DATABASE_URI = Config.get_database_uri()
