"""
Authentication and admin decorators for the API blueprints
"""

import time
from functools import wraps
from flask import session, jsonify, g

from config import Config
from models import db, User


def get_current_user():
    """Helper function to get current logged-in user"""
    user_id = session.get('user_id')
    if user_id:
        return db.session.get(User, user_id)
    return None


def require_auth(f):
    """Decorator to require an authenticated, active user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('logged_in'):
            return jsonify({'success': False, 'error': 'Authentication required'}), 401

        # Check session timeout
        if 'last_activity' in session:
            if time.time() - session['last_activity'] > Config.SESSION_TIMEOUT:
                session.clear()
                return jsonify({'success': False, 'error': 'Session expired'}), 401

        user = get_current_user()
        if not user or not user.is_active:
            session.clear()
            return jsonify({'success': False, 'error': 'User not found'}), 401

        session['last_activity'] = time.time()
        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Decorator to require admin privileges, stack under require_auth"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = g.get('current_user') or get_current_user()
        if not user or not user.is_admin:
            return jsonify({
                'success': False,
                'error': 'Admin privileges required',
                'code': 'PERMISSION_DENIED',
            }), 403
        return f(*args, **kwargs)
    return decorated_function
