#!/usr/bin/env python3
"""
DockLite - self-hosted control panel for Docker sites and Postgres databases
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import Config, get_secret_key
from docker_manager import DockerError
from folder_store import FolderError
from models import db, create_default_admin
from orchestrator import ProvisionError
from path_guard import PathError

from auth_routes import auth_bp
from container_routes import containers_bp
from database_routes import databases_bp
from file_routes import files_bp
from folder_routes import folders_bp
from site_routes import sites_bp
from user_store import UserError
from users_routes import users_bp

logger = logging.getLogger(__name__)


def _configure_logging(app):
    logging.basicConfig(level=logging.INFO)
    if app.config.get('TESTING'):
        return
    handler = RotatingFileHandler(app.config['LOG_FILE'], maxBytes=10000000, backupCount=5)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
    ))
    app.logger.addHandler(handler)
    logging.getLogger().addHandler(handler)


def _register_error_handlers(app):
    @app.errorhandler(PathError)
    def handle_path_error(e):
        logger.warning(f"Path rejected ({e.kind}): {e.message}")
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(FolderError)
    def handle_folder_error(e):
        return jsonify({'success': False, 'error': e.message}), e.status

    @app.errorhandler(ProvisionError)
    def handle_provision_error(e):
        return jsonify({'success': False, 'error': e.message}), e.status

    @app.errorhandler(UserError)
    def handle_user_error(e):
        return jsonify({'success': False, 'error': e.message}), e.status

    @app.errorhandler(DockerError)
    def handle_docker_error(e):
        logger.error(f"Docker error: {e.message}")
        return jsonify({'success': False, 'error': e.message}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'success': False, 'error': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.exception(f"Unhandled error: {str(e)}")
        db.session.rollback()
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config['SECRET_KEY'] = get_secret_key()
    app.config['MAX_CONTENT_LENGTH'] = Config.MAX_UPLOAD_SIZE
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
    if config_overrides:
        app.config.update(config_overrides)

    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if uri == f'sqlite:///{Config.SQLITE_PATH}':
        os.makedirs(os.path.dirname(Config.SQLITE_PATH), exist_ok=True)

    _configure_logging(app)
    db.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(folders_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(sites_bp)
    app.register_blueprint(databases_bp)
    app.register_blueprint(containers_bp)
    app.register_blueprint(users_bp)

    _register_error_handlers(app)

    @app.after_request
    def after_request(response):
        """Add security headers after each request"""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'same-origin'
        return response

    @app.route('/api/health')
    def health():
        return jsonify({'success': True, 'status': 'ok'})

    with app.app_context():
        db.create_all()

    return app


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        create_default_admin()
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', '5000')), debug=False)
