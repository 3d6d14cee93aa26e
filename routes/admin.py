# routes/admin.py
from flask import Blueprint, current_app, jsonify, redirect, render_template, request, session, url_for

from core.models import PAGE_KEYS
from middleware.security import require_auth

admin_bp = Blueprint('admin', __name__)

THEMES = ('light', 'dark')


def current_theme():
    theme = session.get('admin_theme')
    return theme if theme in THEMES else 'light'


@admin_bp.route('/login')
def login_page():
    if 'user_id' in session:
        return redirect(url_for('admin.panel'))
    return render_template(
        'admin/login.html',
        theme=current_theme(),
        site_name=current_app.config['SITE_NAME'],
    )


@admin_bp.route('/index.html')
@admin_bp.route('/')
@require_auth
def panel():
    return render_template(
        'admin/index.html',
        theme=current_theme(),
        page_keys=PAGE_KEYS,
        user_email=session.get('email'),
        site_name=current_app.config['SITE_NAME'],
    )


@admin_bp.route('/theme', methods=['POST'])
def toggle_theme():
    theme = 'dark' if current_theme() == 'light' else 'light'
    session['admin_theme'] = theme
    if request.is_json or request.accept_mimetypes.best == 'application/json':
        return jsonify({'theme': theme})
    return redirect(request.referrer or url_for('admin.login_page'))
