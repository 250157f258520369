"""
Ignyt - OAuth Tests
Facebook/Instagram and Google Business Profile connection flows, providers mocked
"""
from datetime import datetime, timedelta
from unittest.mock import patch
from urllib.parse import urlparse, parse_qs

import pytest

from app.models.db_models import AccountStatus, PartnerStatus, Platform
from app.services.db_service import DataService
from app.services.oauth_service import OAuthState, normalize_platform, token_expiry_from

PAGES = {
    'data': [
        {
            'id': 'page-1',
            'name': 'Main Street Paints',
            'access_token': 'page-token',
            'category': 'Retail',
            'instagram_business_account': {'id': 'ig-1', 'username': 'mainstreetpaints'}
        },
        {'id': 'page-2', 'name': 'Side Page', 'access_token': 'page-token-2', 'category': 'Retail'}
    ]
}


def _query(response):
    return parse_qs(urlparse(response.headers['Location']).query)


@pytest.fixture
def pending_partner(brand, make_partner):
    return make_partner(brand, name='New Shop')


class TestOAuthHelpers:
    """Test state handling and helpers"""

    def test_normalize_platform(self):
        assert normalize_platform('Instagram') == 'facebook'
        assert normalize_platform('gbp') == 'google'
        assert normalize_platform('facebook') == 'facebook'

    def test_state_is_single_use(self, app):
        state = OAuthState.generate(1, 2, 'facebook')

        assert OAuthState.peek(state)['partner_id'] == 1
        assert OAuthState.validate(state)['user_id'] == 2
        assert OAuthState.validate(state) is None

    def test_expired_state(self, app):
        state = OAuthState.generate(1, 2, 'facebook')
        OAuthState._states[state]['expires_at'] = datetime.utcnow() - timedelta(seconds=1)

        assert OAuthState.peek(state) is None

    def test_token_expiry_from(self):
        expiry = token_expiry_from(3600)
        assert timedelta(minutes=59) < expiry - datetime.utcnow() <= timedelta(hours=1)
        assert token_expiry_from(None) is None
        assert token_expiry_from(0) is None


class TestAuthorize:
    """Test POST /api/oauth/authorize/<platform>"""

    def test_config(self, client, brand, auth_headers):
        body = client.get('/api/oauth/config', headers=auth_headers(brand)).get_json()
        assert body['platforms']['facebook']['configured'] is True
        assert body['platforms']['google']['configured'] is True

    def test_facebook_url(self, client, brand, pending_partner, auth_headers):
        response = client.post('/api/oauth/authorize/instagram', headers=auth_headers(brand), json={
            'partner_id': pending_partner.id
        })

        assert response.status_code == 200
        body = response.get_json()
        assert body['platform'] == 'facebook'
        assert body['auth_url'].startswith('https://www.facebook.com/v18.0/dialog/oauth?')
        assert 'pages_manage_posts' in body['auth_url']
        assert OAuthState.peek(body['state'])['partner_id'] == pending_partner.id

    def test_google_url(self, client, brand, pending_partner, auth_headers):
        body = client.post('/api/oauth/authorize/google', headers=auth_headers(brand), json={
            'partner_id': pending_partner.id
        }).get_json()

        query = parse_qs(urlparse(body['auth_url']).query)
        assert query['access_type'] == ['offline']
        assert query['redirect_uri'] == ['http://localhost:5000/api/oauth/callback/google']

    def test_unsupported_platform(self, client, brand, pending_partner, auth_headers):
        response = client.post('/api/oauth/authorize/tiktok', headers=auth_headers(brand), json={
            'partner_id': pending_partner.id
        })
        assert response.status_code == 400

    def test_not_configured(self, app, client, brand, pending_partner, auth_headers):
        app.config['GOOGLE_CLIENT_ID'] = ''
        response = client.post('/api/oauth/authorize/google', headers=auth_headers(brand), json={
            'partner_id': pending_partner.id
        })
        assert response.status_code == 400

    def test_foreign_partner(self, client, other_brand, pending_partner, auth_headers):
        response = client.post('/api/oauth/authorize/facebook', headers=auth_headers(other_brand), json={
            'partner_id': pending_partner.id
        })
        assert response.status_code == 403


class TestCallback:
    """Test GET /api/oauth/callback/<platform>"""

    def test_provider_error(self, client):
        response = client.get('/api/oauth/callback/facebook?error=access_denied')

        assert response.status_code == 302
        assert _query(response)['oauth_error'] == ['access_denied']

    def test_invalid_state(self, client):
        response = client.get('/api/oauth/callback/facebook?code=abc&state=bogus')
        assert _query(response)['oauth_error'] == ['invalid_state']

    def test_state_for_other_platform(self, app, client):
        state = OAuthState.generate(1, 1, 'google')
        response = client.get(f'/api/oauth/callback/facebook?code=abc&state={state}')
        assert _query(response)['oauth_error'] == ['invalid_state']

    def test_missing_code(self, app, client):
        state = OAuthState.generate(1, 1, 'facebook')
        response = client.get(f'/api/oauth/callback/facebook?state={state}')
        assert _query(response)['oauth_error'] == ['missing_code']

    def test_facebook_exchange(self, app, client, mock_response):
        state = OAuthState.generate(5, 1, 'facebook')

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.side_effect = [
                mock_response({'access_token': 'short', 'expires_in': 3600}),
                mock_response({'access_token': 'long', 'expires_in': 5184000})
            ]
            response = client.get(f'/api/oauth/callback/facebook?code=abc&state={state}')

        assert response.status_code == 302
        assert response.headers['Location'].startswith('http://localhost:5000/partner-connect?')
        query = _query(response)
        assert query['partner_id'] == ['5']
        temp = OAuthState.peek(query['state'][0])
        assert temp['token']['access_token'] == 'long'
        assert temp['token']['expires_in'] == 5184000
        assert OAuthState.peek(state) is None

    def test_facebook_exchange_error(self, app, client, mock_response):
        state = OAuthState.generate(5, 1, 'facebook')

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.return_value = mock_response({'error': {'message': 'Code was invalid'}})
            response = client.get(f'/api/oauth/callback/facebook?code=abc&state={state}')

        assert _query(response)['oauth_error'] == ['Facebook error: Code was invalid']

    def test_google_exchange(self, app, client, mock_response):
        state = OAuthState.generate(5, 1, 'google')

        with patch('app.services.oauth_service.requests.post') as mock_post:
            mock_post.return_value = mock_response({
                'access_token': 'g-access', 'refresh_token': 'g-refresh', 'expires_in': 3599
            })
            response = client.get(f'/api/oauth/callback/google?code=abc&state={state}')

        temp = OAuthState.peek(_query(response)['state'][0])
        assert temp['token']['refresh_token'] == 'g-refresh'
        assert mock_post.call_args[1]['data']['grant_type'] == 'authorization_code'


class TestConnect:
    """Test account discovery and connection"""

    def _token_state(self, partner, user, platform, **token):
        token.setdefault('access_token', 'user-token')
        return OAuthState.generate(partner.id, user.id, platform, token=token)

    def test_list_facebook_pages(self, client, brand, pending_partner, mock_response, auth_headers):
        state = self._token_state(pending_partner, brand, 'facebook')

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.return_value = mock_response(PAGES)
            response = client.post('/api/oauth/accounts/facebook', headers=auth_headers(brand), json={'state': state})

        assert response.status_code == 200
        accounts = response.get_json()['accounts']
        assert accounts[0]['instagram'] == {'id': 'ig-1', 'username': 'mainstreetpaints'}
        assert accounts[1]['instagram'] is None
        assert 'access_token' not in accounts[0]

    def test_list_google_locations(self, client, brand, pending_partner, mock_response, auth_headers):
        state = self._token_state(pending_partner, brand, 'google')

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.side_effect = [
                mock_response({'accounts': [{'name': 'accounts/111'}]}),
                mock_response({'locations': [{
                    'name': 'locations/222',
                    'title': 'Main Street Paints',
                    'storefrontAddress': {'addressLines': ['1 Main St']}
                }]})
            ]
            body = client.post('/api/oauth/accounts/google', headers=auth_headers(brand), json={'state': state}).get_json()

        assert body['accounts'] == [{'id': '222', 'name': 'Main Street Paints', 'address': '1 Main St', 'account_id': '111'}]

    def test_state_without_token(self, app, client, brand, pending_partner, auth_headers):
        state = OAuthState.generate(pending_partner.id, brand.id, 'facebook')
        response = client.post('/api/oauth/accounts/facebook', headers=auth_headers(brand), json={'state': state})
        assert response.status_code == 400

    def test_state_for_other_platform(self, client, brand, pending_partner, auth_headers):
        state = self._token_state(pending_partner, brand, 'google')
        response = client.post('/api/oauth/accounts/facebook', headers=auth_headers(brand), json={'state': state})
        assert response.status_code == 400

    def test_other_brand_cannot_use_state(self, client, brand, other_brand, pending_partner, auth_headers):
        state = self._token_state(pending_partner, brand, 'facebook')
        response = client.post('/api/oauth/accounts/facebook', headers=auth_headers(other_brand), json={'state': state})
        assert response.status_code == 403

    def test_connect_facebook_page_with_instagram(self, client, brand, pending_partner, mock_response, auth_headers):
        state = self._token_state(pending_partner, brand, 'facebook', expires_in=5184000)

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.return_value = mock_response(PAGES)
            response = client.post('/api/oauth/connect/facebook', headers=auth_headers(brand), json={
                'state': state, 'page_id': 'page-1'
            })

        assert response.status_code == 200
        body = response.get_json()
        assert body['partner']['status'] == PartnerStatus.ACTIVE
        assert body['partner']['connection_date'] is not None
        assert [a['platform'] for a in body['accounts']] == [Platform.FACEBOOK, Platform.INSTAGRAM]

        data = DataService()
        page = data.get_account_by_platform_id('facebook', 'page-1')
        instagram = data.get_account_by_platform_id('instagram', 'ig-1')
        assert page.access_token == 'page-token'
        assert instagram.access_token == 'page-token'
        assert instagram.account_name == 'mainstreetpaints'
        assert page.token_expiry > datetime.utcnow() + timedelta(days=59)

        # State is consumed by a successful connection
        assert OAuthState.peek(state) is None

    def test_reconnect_updates_existing_account(self, client, brand, pending_partner, make_account,
                                                mock_response, auth_headers):
        existing = make_account(pending_partner, 'facebook', account_id='page-1',
                                access_token='old', status=AccountStatus.EXPIRED)
        state = self._token_state(pending_partner, brand, 'facebook')

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.return_value = mock_response(PAGES)
            client.post('/api/oauth/connect/facebook', headers=auth_headers(brand), json={
                'state': state, 'page_id': 'page-1'
            })

        assert existing.access_token == 'page-token'
        assert existing.status == AccountStatus.ACTIVE
        assert len(DataService().get_accounts_for_partner(pending_partner.id)) == 2

    def test_connect_unknown_page(self, client, brand, pending_partner, mock_response, auth_headers):
        state = self._token_state(pending_partner, brand, 'facebook')

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.return_value = mock_response(PAGES)
            response = client.post('/api/oauth/connect/facebook', headers=auth_headers(brand), json={
                'state': state, 'page_id': 'page-9'
            })

        assert response.status_code == 404
        assert OAuthState.peek(state) is not None

    def test_connect_google_location(self, client, brand, pending_partner, mock_response, auth_headers):
        state = self._token_state(pending_partner, brand, 'google', refresh_token='g-refresh', expires_in=3600)

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.side_effect = [
                mock_response({'accounts': [{'name': 'accounts/111'}]}),
                mock_response({'locations': [{'name': 'locations/222', 'title': 'Main Street Paints'}]})
            ]
            response = client.post('/api/oauth/connect/google', headers=auth_headers(brand), json={
                'state': state, 'location_id': '222'
            })

        assert response.status_code == 200
        account = DataService().get_account_by_platform_id('google', '222')
        assert account.refresh_token == 'g-refresh'
        assert account.account_name == 'Main Street Paints'

    def test_connect_requires_page_id(self, client, brand, pending_partner, auth_headers):
        state = self._token_state(pending_partner, brand, 'facebook')
        response = client.post('/api/oauth/connect/facebook', headers=auth_headers(brand), json={'state': state})
        assert response.status_code == 400


class TestRefresh:
    """Test POST /api/oauth/refresh/<account_id>"""

    def test_refresh_google(self, client, brand, partner, make_account, mock_response, auth_headers):
        account = make_account(partner, 'google', refresh_token='g-refresh', status=AccountStatus.EXPIRED)

        with patch('app.services.oauth_service.requests.post') as mock_post:
            mock_post.return_value = mock_response({'access_token': 'fresh', 'expires_in': 3600})
            response = client.post(f'/api/oauth/refresh/{account.id}', headers=auth_headers(brand))

        assert response.status_code == 200
        assert account.access_token == 'fresh'
        assert account.refresh_token == 'g-refresh'
        assert account.status == AccountStatus.ACTIVE

    def test_refresh_without_refresh_token(self, client, brand, partner, make_account, auth_headers):
        account = make_account(partner, 'facebook')
        response = client.post(f'/api/oauth/refresh/{account.id}', headers=auth_headers(brand))

        assert response.status_code == 400
        assert response.get_json()['reconnect_required'] is True

    def test_validate_facebook(self, client, brand, partner, make_account, mock_response, auth_headers):
        account = make_account(partner, 'facebook')

        with patch('app.services.oauth_service.requests.get') as mock_get:
            mock_get.return_value = mock_response({'data': {'is_valid': True, 'scopes': ['pages_manage_posts']}})
            body = client.get(f'/api/oauth/validate/{account.id}', headers=auth_headers(brand)).get_json()

        assert body['valid'] is True
        assert body['platform'] == 'facebook'
