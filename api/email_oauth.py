# api/email_oauth.py
"""
Gmail connection endpoints: health check, OAuth start and OAuth callback

``/oauthStart`` is an admin-only link opened manually once; the callback
stores the refresh token the welcome-email task relies on.
"""

import logging

from flask import Blueprint, current_app, redirect, request

from core.gmail_oauth import OAuthError, build_oauth_client
from services.content_store import SiteStore
from services.firebase import get_db

email_oauth_bp = Blueprint('email_oauth', __name__)
logger = logging.getLogger(__name__)

TEXT = {'Content-Type': 'text/plain; charset=utf-8'}


def function_base_url() -> str:
    """Public base URL of this service, honouring proxy headers"""
    proto = request.headers.get('X-Forwarded-Proto') or 'https'
    host = request.headers.get('X-Forwarded-Host') or request.headers.get('Host') or request.host
    return f"{proto}://{host}"


def callback_redirect_uri() -> str:
    return f"{function_base_url()}/{current_app.config['OAUTH_CALLBACK_PATH']}"


@email_oauth_bp.route('/health')
def health():
    return 'OK', 200, TEXT


@email_oauth_bp.route('/oauthStart')
def oauth_start():
    try:
        oauth_client = build_oauth_client(current_app.config, callback_redirect_uri())
        url = oauth_client.generate_auth_url()
        response = redirect(url, code=302)
        response.set_data('Redirecting…')
        return response
    except Exception as e:
        logger.error(f"OAuth start failed: {e}", exc_info=True)
        return 'Failed to start OAuth.', 500, TEXT


@email_oauth_bp.route('/oauthCallback')
def oauth_callback():
    code = request.args.get('code')
    if not code:
        return 'Missing ?code=', 400, TEXT

    try:
        redirect_uri = callback_redirect_uri()
        oauth_client = build_oauth_client(current_app.config, redirect_uri)
        tokens = oauth_client.exchange_code(str(code))

        if not tokens.refresh_token:
            return 'No refresh_token returned. Try again with prompt=consent.', 400, TEXT

        SiteStore(get_db(), current_app.security_manager).save_refresh_token(
            tokens.refresh_token,
            tokenSource='oauthCallback',
            redirectUri=redirect_uri,
        )
        current_app.security_manager.log_security_event('gmail_connected', {
            'redirect_uri': redirect_uri,
        })
        return '✅ Gmail connected! You can close this tab and test a newsletter signup.', 200, TEXT
    except OAuthError as e:
        logger.error(f"OAuth callback failed: {e}")
        return 'OAuth callback failed.', 500, TEXT
    except Exception as e:
        logger.error(f"OAuth callback failed: {e}", exc_info=True)
        return 'OAuth callback failed.', 500, TEXT
