#!/usr/bin/env python3
"""
Login / logout API
"""

import time
import logging
from flask import Blueprint, request, jsonify, session

from audit import log_audit, get_client_ip
from models import User
from permissions import require_auth, get_current_user

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    client_ip = get_client_ip()

    if not username or not password:
        return jsonify({'success': False, 'error': 'Username and password are required'}), 400

    user = User.query.filter_by(username=username, is_active=True).first()
    if not user or not user.check_password(password):
        log_audit("login_attempt", username, client_ip, "Invalid credentials", "failed",
                  user.id if user else None)
        logger.warning(f"Failed login attempt from IP: {client_ip} for user: {username}")
        return jsonify({'success': False, 'error': 'Invalid credentials'}), 401

    session.clear()
    session['logged_in'] = True
    session['user_id'] = user.id
    session['username'] = user.username
    session['is_admin'] = user.is_admin
    session['last_activity'] = time.time()

    user.record_successful_login()
    log_audit("login", username, client_ip, "Successful login", "success", user.id)
    logger.info(f"Successful login from IP: {client_ip}")
    return jsonify({'success': True, 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    username = session.get('username', 'unknown')
    user_id = session.get('user_id')
    log_audit("logout", username, get_client_ip(), "User logged out", "success", user_id)
    session.clear()
    return jsonify({'success': True})


@auth_bp.route('/me', methods=['GET'])
@require_auth
def me():
    return jsonify({'success': True, 'user': get_current_user().to_dict()})
