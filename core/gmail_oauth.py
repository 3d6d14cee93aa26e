# core/gmail_oauth.py
"""
Gmail OAuth 2.0 client for the welcome-email sender

Covers the three remote calls of the token lifecycle:
- building the consent URL (offline access, forced consent)
- exchanging an authorization code for a refresh token
- exchanging the stored refresh token for a short-lived access token
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests
import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2.credentials import Credentials

logger = logging.getLogger(__name__)

AUTH_URI = 'https://accounts.google.com/o/oauth2/v2/auth'
TOKEN_URI = 'https://oauth2.googleapis.com/token'
GMAIL_SEND_SCOPE = 'https://www.googleapis.com/auth/gmail.send'


class OAuthError(Exception):
    """Raised when Google rejects or cannot complete a token request"""


@dataclass
class TokenResponse:
    access_token: Optional[str]
    refresh_token: Optional[str]
    expires_in: Optional[int]
    scope: Optional[str]
    token_type: Optional[str]

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'TokenResponse':
        return cls(
            access_token=data.get('access_token'),
            refresh_token=data.get('refresh_token'),
            expires_in=data.get('expires_in'),
            scope=data.get('scope'),
            token_type=data.get('token_type'),
        )


class GmailOAuthClient:
    """OAuth2 web-server flow against Google's endpoints"""

    def __init__(self,
                 client_id: str,
                 client_secret: str,
                 redirect_uri: Optional[str] = None,
                 scopes: Optional[List[str]] = None,
                 timeout: float = 30.0,
                 http: Optional[requests.Session] = None):
        if not client_id or not client_secret:
            raise OAuthError('GMAIL_CLIENT_ID and GMAIL_CLIENT_SECRET must be configured')
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes or [GMAIL_SEND_SCOPE]
        self.timeout = timeout
        self.http = http or requests.Session()

    def generate_auth_url(self, state: Optional[str] = None) -> str:
        params = {
            'client_id': self.client_id,
            'redirect_uri': self.redirect_uri,
            'response_type': 'code',
            'access_type': 'offline',
            'prompt': 'consent',
            'scope': ' '.join(self.scopes),
        }
        if state:
            params['state'] = state
        return f"{AUTH_URI}?{urlencode(params)}"

    def exchange_code(self, code: str) -> TokenResponse:
        """Trade an authorization code for tokens"""
        payload = {
            'code': code,
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'redirect_uri': self.redirect_uri,
            'grant_type': 'authorization_code',
        }
        try:
            response = self.http.post(TOKEN_URI, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise OAuthError(f'Token endpoint unreachable: {e}') from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            error = data.get('error_description') or data.get('error') or response.text[:200]
            raise OAuthError(f'Code exchange failed ({response.status_code}): {error}')

        return TokenResponse.from_json(data)

    def get_access_token(self, refresh_token: str) -> Optional[str]:
        """
        Refresh an access token from a stored refresh token

        Returns:
            Access token string, or None if Google returned no token
        """
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.scopes,
        )
        try:
            credentials.refresh(google.auth.transport.requests.Request(session=self.http))
        except google.auth.exceptions.RefreshError as e:
            raise OAuthError(f'Refresh token rejected: {e}') from e
        except google.auth.exceptions.TransportError as e:
            raise OAuthError(f'Token endpoint unreachable: {e}') from e
        return credentials.token or None


def build_oauth_client(config, redirect_uri: Optional[str] = None) -> GmailOAuthClient:
    """Client from Flask config values"""
    return GmailOAuthClient(
        client_id=config.get('GMAIL_CLIENT_ID'),
        client_secret=config.get('GMAIL_CLIENT_SECRET'),
        redirect_uri=redirect_uri,
        scopes=config.get('GMAIL_SCOPES'),
    )
