# middleware/security.py
"""
Security Middleware for Request Processing
"""

from flask import current_app, request, jsonify, session, redirect, url_for
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect
from functools import wraps
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Bound to the app in create_app
limiter = Limiter(key_func=get_remote_address)
csrf = CSRFProtect()


def security_headers(response):
    """Add security headers to all responses"""
    for header, value in current_app.config.get('SECURITY_HEADERS', {}).items():
        response.headers.setdefault(header, value)

    csp = current_app.config.get('CSP_POLICY')
    if csp:
        response.headers.setdefault(
            'Content-Security-Policy',
            '; '.join(f'{directive} {value}' for directive, value in csp.items())
        )
    return response


def _is_api_request() -> bool:
    return request.path.startswith('/api/') or request.is_json


def require_auth(f):
    """Decorator to require an admin session"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            security_manager = getattr(current_app, 'security_manager', None)
            if security_manager is not None:
                security_manager.log_security_event('unauthorized_access_attempt', {
                    'endpoint': request.endpoint,
                    'method': request.method
                })
            if _is_api_request():
                return jsonify({'error': 'Authentication required'}), 401
            return redirect(url_for('admin.login_page'))

        session['last_activity'] = datetime.now(timezone.utc).isoformat()
        return f(*args, **kwargs)
    return decorated_function


def session_expired(lifetime) -> bool:
    """True when the admin session has been idle longer than ``lifetime``"""
    last_activity = session.get('last_activity')
    if not last_activity:
        return False
    try:
        last = datetime.fromisoformat(last_activity)
    except ValueError:
        return True
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - last > lifetime
