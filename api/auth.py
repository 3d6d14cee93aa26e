# api/auth.py
"""
Admin Authentication API

The admin panel signs in with Firebase Auth in the browser and posts the
resulting ID token here; a verified token becomes a server session.
"""

from flask import Blueprint, current_app, request, jsonify, session
from flask_wtf.csrf import generate_csrf
import secrets
import logging
from datetime import datetime, timedelta, timezone

from core.security_manager import AuthenticationError
from middleware.security import limiter, require_auth

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def _login_limit():
    return current_app.config.get('LOGIN_RATE_LIMIT', '5 per minute')


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(_login_limit)
def login():
    """
    Exchange a Firebase ID token for an admin session
    """
    security_manager = current_app.security_manager
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    id_token = (data.get('id_token') or data.get('idToken') or '').strip()

    security_manager.log_security_event('login_attempt', {
        'user_agent': request.headers.get('User-Agent')
    })

    if not id_token:
        return jsonify({'error': 'ID token required'}), 400

    try:
        claims = security_manager.verify_admin_token(id_token)
    except AuthenticationError as e:
        security_manager.log_security_event('login_failed', {'reason': str(e)})
        return jsonify({'error': 'Invalid credentials'}), 401

    now = datetime.now(timezone.utc)
    session.clear()
    session.permanent = True
    session.update({
        'user_id': claims.get('uid') or claims.get('sub'),
        'email': claims.get('email'),
        'session_id': secrets.token_urlsafe(32),
        'login_time': now.isoformat(),
        'last_activity': now.isoformat(),
    })

    security_manager.log_security_event('login_success', {
        'user_id': session['user_id'],
        'email': session.get('email'),
    })

    lifetime = current_app.config.get('PERMANENT_SESSION_LIFETIME', timedelta(hours=8))
    return jsonify({
        'success': True,
        'user': {
            'id': session['user_id'],
            'email': session.get('email'),
        },
        'csrf_token': generate_csrf(),
        'session_expires': (now + lifetime).isoformat()
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    current_app.security_manager.log_security_event('logout', {
        'user_id': session.get('user_id'),
    })
    session.clear()
    return jsonify({'success': True, 'message': 'Logged out successfully'})


@auth_bp.route('/session', methods=['GET'])
@require_auth
def session_status():
    return jsonify({
        'authenticated': True,
        'user': {'id': session['user_id'], 'email': session.get('email')},
        'login_time': session.get('login_time'),
        'csrf_token': generate_csrf(),
    })
