from unittest import mock
from urllib.parse import parse_qs, urlparse

import google.auth.exceptions
import pytest
import requests

from core.gmail_oauth import GMAIL_SEND_SCOPE, TOKEN_URI, GmailOAuthClient, OAuthError


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


def _client(http=None):
    return GmailOAuthClient('cid', 'secret', redirect_uri='https://fn.example/oauthCallback',
                            http=http or mock.Mock(spec=requests.Session))


def test_client_requires_credentials():
    with pytest.raises(OAuthError):
        GmailOAuthClient('', 'secret')
    with pytest.raises(OAuthError):
        GmailOAuthClient('cid', None)


def test_auth_url_requests_offline_consent():
    url = urlparse(_client().generate_auth_url())
    params = parse_qs(url.query)
    assert url.netloc == 'accounts.google.com'
    assert params['access_type'] == ['offline']
    assert params['prompt'] == ['consent']
    assert params['scope'] == [GMAIL_SEND_SCOPE]
    assert params['redirect_uri'] == ['https://fn.example/oauthCallback']
    assert params['response_type'] == ['code']


def test_exchange_code_posts_to_token_endpoint():
    http = mock.Mock(spec=requests.Session)
    http.post.return_value = FakeResponse(200, {
        'access_token': 'ya29.a', 'refresh_token': '1//r', 'expires_in': 3599,
        'scope': GMAIL_SEND_SCOPE, 'token_type': 'Bearer',
    })
    tokens = _client(http).exchange_code('auth-code')

    assert tokens.refresh_token == '1//r'
    url = http.post.call_args.args[0]
    data = http.post.call_args.kwargs['data']
    assert url == TOKEN_URI
    assert data['grant_type'] == 'authorization_code'
    assert data['code'] == 'auth-code'
    assert data['redirect_uri'] == 'https://fn.example/oauthCallback'


def test_exchange_code_failure_raises():
    http = mock.Mock(spec=requests.Session)
    http.post.return_value = FakeResponse(400, {'error': 'invalid_grant'})
    with pytest.raises(OAuthError, match='invalid_grant'):
        _client(http).exchange_code('stale')


def test_exchange_code_network_error_raises():
    http = mock.Mock(spec=requests.Session)
    http.post.side_effect = requests.ConnectionError('down')
    with pytest.raises(OAuthError):
        _client(http).exchange_code('code')


def test_get_access_token_refreshes_credentials():
    def refresh(self, request):
        self.token = 'ya29.fresh'

    with mock.patch('core.gmail_oauth.Credentials.refresh', autospec=True, side_effect=refresh):
        assert _client().get_access_token('1//r') == 'ya29.fresh'


def test_get_access_token_rejected_refresh_token():
    error = google.auth.exceptions.RefreshError('invalid_grant')
    with mock.patch('core.gmail_oauth.Credentials.refresh', side_effect=error):
        with pytest.raises(OAuthError):
            _client().get_access_token('1//revoked')
