"""
Audit trail helpers shared by the blueprints
"""

import logging

from flask import request, session

from config import Config
from models import db, AuditLog

logger = logging.getLogger(__name__)


def get_client_ip():
    return request.environ.get('HTTP_X_FORWARDED_FOR', request.remote_addr) or 'unknown'


def log_audit(event_type, username, ip, message, status="success", user_id=None):
    """Log security event to audit log"""
    if Config.ENABLE_AUDIT_LOG:
        try:
            audit_entry = AuditLog(
                user_id=user_id,
                username=username,
                ip_address=ip,
                event_type=event_type,
                message=message,
                status=status
            )
            db.session.add(audit_entry)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to log audit event: {str(e)}")


def audit_current_user(event_type, message, status="success"):
    """log_audit for the user of the current request"""
    log_audit(event_type, session.get('username', 'unknown'), get_client_ip(), message, status,
              session.get('user_id'))
