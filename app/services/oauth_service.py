"""
Ignyt - OAuth Service
Handles OAuth2 flows for Facebook/Instagram pages and Google Business Profile
"""
import secrets
import logging
import requests
from datetime import datetime, timedelta
from urllib.parse import urlencode
from typing import Optional, Dict, Tuple

from flask import current_app

logger = logging.getLogger(__name__)

GRAPH_API_URL = 'https://graph.facebook.com/v18.0'
GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'


class OAuthConfig:
    """OAuth configuration for all platforms, read from the Flask app config"""

    FACEBOOK_SCOPES = 'pages_show_list,pages_read_engagement,pages_manage_posts,read_insights,instagram_basic,instagram_content_publish,instagram_manage_insights,business_management'
    GOOGLE_SCOPES = 'https://www.googleapis.com/auth/business.manage'

    @property
    def FACEBOOK_APP_ID(self) -> str:
        return current_app.config.get('FACEBOOK_APP_ID', '')

    @property
    def FACEBOOK_APP_SECRET(self) -> str:
        return current_app.config.get('FACEBOOK_APP_SECRET', '')

    @property
    def GOOGLE_CLIENT_ID(self) -> str:
        return current_app.config.get('GOOGLE_CLIENT_ID', '')

    @property
    def GOOGLE_CLIENT_SECRET(self) -> str:
        return current_app.config.get('GOOGLE_CLIENT_SECRET', '')

    @property
    def APP_URL(self) -> str:
        return current_app.config.get('APP_URL', '').rstrip('/')

    def get_callback_url(self, platform: str) -> str:
        """Get OAuth callback URL for a platform"""
        return f"{self.APP_URL}/api/oauth/callback/{normalize_platform(platform)}"

    def is_configured(self, platform: str) -> bool:
        """Check if OAuth is configured for a platform"""
        platform = normalize_platform(platform)
        if platform == 'facebook':
            return bool(self.FACEBOOK_APP_ID and self.FACEBOOK_APP_SECRET)
        elif platform == 'google':
            return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)
        return False


def normalize_platform(platform: str) -> str:
    """Instagram connects through the Facebook login"""
    platform = (platform or '').lower()
    if platform == 'instagram':
        return 'facebook'
    if platform == 'gbp':
        return 'google'
    return platform


class OAuthState:
    """Manages OAuth state parameters for CSRF protection"""

    # In-memory state store, single process only
    _states: Dict[str, Dict] = {}
    TTL_MINUTES = 10

    @classmethod
    def generate(cls, partner_id: int, user_id: int, platform: str, token: Optional[Dict] = None) -> str:
        """Generate a secure state parameter, optionally carrying an exchanged token"""
        cls.cleanup_expired()
        state = secrets.token_urlsafe(32)
        cls._states[state] = {
            'partner_id': partner_id,
            'user_id': user_id,
            'platform': platform,
            'token': token,
            'created_at': datetime.utcnow(),
            'expires_at': datetime.utcnow() + timedelta(minutes=cls.TTL_MINUTES)
        }
        return state

    @classmethod
    def validate(cls, state: str) -> Optional[Dict]:
        """Validate and consume a state parameter"""
        if not state or state not in cls._states:
            return None

        data = cls._states.pop(state)

        if datetime.utcnow() > data['expires_at']:
            return None

        return data

    @classmethod
    def peek(cls, state: str) -> Optional[Dict]:
        """Read a state without consuming it"""
        data = cls._states.get(state) if state else None
        if not data:
            return None
        if datetime.utcnow() > data['expires_at']:
            cls._states.pop(state, None)
            return None
        return data

    @classmethod
    def cleanup_expired(cls):
        """Remove expired states"""
        now = datetime.utcnow()
        expired = [s for s, d in cls._states.items() if now > d['expires_at']]
        for s in expired:
            cls._states.pop(s, None)

    @classmethod
    def clear(cls):
        cls._states.clear()


class OAuthService:
    """
    OAuth2 service for social media platforms

    Supported platforms:
    - facebook: Facebook Pages (and their linked Instagram business accounts)
    - google: Google Business Profile
    """

    def __init__(self):
        self.config = OAuthConfig()

    # ==========================================
    # AUTHORIZATION URL GENERATION
    # ==========================================

    def get_auth_url(self, platform: str, partner_id: int, user_id: int) -> Tuple[str, str]:
        """
        Generate OAuth authorization URL

        Args:
            platform: 'facebook', 'instagram' or 'google'
            partner_id: Retail partner being connected
            user_id: User initiating the connection

        Returns:
            Tuple of (auth_url, state)
        """
        platform = normalize_platform(platform)
        if platform == 'facebook':
            state = OAuthState.generate(partner_id, user_id, platform)
            return self._facebook_auth_url(state), state
        elif platform == 'google':
            state = OAuthState.generate(partner_id, user_id, platform)
            return self._google_auth_url(state), state
        else:
            raise OAuthError(f"Unsupported platform: {platform}")

    def _facebook_auth_url(self, state: str) -> str:
        """Generate Facebook OAuth URL (also used for Instagram)"""
        params = {
            'client_id': self.config.FACEBOOK_APP_ID,
            'redirect_uri': self.config.get_callback_url('facebook'),
            'scope': self.config.FACEBOOK_SCOPES,
            'state': state,
            'response_type': 'code'
        }
        return f"https://www.facebook.com/v18.0/dialog/oauth?{urlencode(params)}"

    def _google_auth_url(self, state: str) -> str:
        """Generate Google OAuth URL for Business Profile"""
        params = {
            'client_id': self.config.GOOGLE_CLIENT_ID,
            'redirect_uri': self.config.get_callback_url('google'),
            'scope': self.config.GOOGLE_SCOPES,
            'state': state,
            'response_type': 'code',
            'access_type': 'offline',
            'prompt': 'consent'  # Force refresh token
        }
        return f"https://accounts.google.com/o/oauth2/v2/auth?{urlencode(params)}"

    # ==========================================
    # TOKEN EXCHANGE
    # ==========================================

    def exchange_code(self, platform: str, code: str) -> Dict:
        """
        Exchange authorization code for access token

        Returns:
            Dict with access_token, refresh_token (if available), expires_in
        """
        platform = normalize_platform(platform)
        if platform == 'facebook':
            return self._facebook_exchange(code)
        elif platform == 'google':
            return self._google_exchange(code)
        else:
            raise OAuthError(f"Unsupported platform: {platform}")

    def _facebook_exchange(self, code: str) -> Dict:
        """Exchange Facebook auth code for token"""
        params = {
            'client_id': self.config.FACEBOOK_APP_ID,
            'client_secret': self.config.FACEBOOK_APP_SECRET,
            'redirect_uri': self.config.get_callback_url('facebook'),
            'code': code
        }

        data = self._get_json(f"{GRAPH_API_URL}/oauth/access_token", params=params)

        if 'error' in data:
            logger.error(f"Facebook token exchange failed: {data['error']}")
            raise OAuthError(f"Facebook error: {_error_message(data['error'])}")

        # Swap the short-lived token for a long-lived one
        access_token = data.get('access_token')
        long_lived = self._facebook_get_long_lived_token(access_token)

        return {
            'access_token': long_lived.get('access_token', access_token),
            'expires_in': long_lived.get('expires_in', data.get('expires_in', 3600)),
            'token_type': 'Bearer'
        }

    def _facebook_get_long_lived_token(self, short_token: str) -> Dict:
        """Exchange short-lived token for long-lived token (60 days)"""
        params = {
            'grant_type': 'fb_exchange_token',
            'client_id': self.config.FACEBOOK_APP_ID,
            'client_secret': self.config.FACEBOOK_APP_SECRET,
            'fb_exchange_token': short_token
        }

        result = self._get_json(f"{GRAPH_API_URL}/oauth/access_token", params=params)

        if 'error' in result:
            logger.warning(f"Failed to get long-lived token: {result['error']}")
            return {'access_token': short_token}  # Fall back to short token

        logger.info(f"Got long-lived Facebook token, expires_in: {result.get('expires_in', 'unknown')}")
        return result

    def _google_exchange(self, code: str) -> Dict:
        result = self._google_token_call(
            'authorization_code',
            code=code,
            redirect_uri=self.config.get_callback_url('google')
        )
        return {
            'access_token': result.get('access_token'),
            'refresh_token': result.get('refresh_token'),
            'expires_in': result.get('expires_in', 3600),
            'token_type': 'Bearer'
        }

    # ==========================================
    # TOKEN REFRESH
    # ==========================================

    def refresh_token(self, platform: str, refresh_token: str) -> Dict:
        """
        Refresh an expired access token

        Only Google issues refresh tokens; Facebook pages must be reconnected.
        """
        platform = normalize_platform(platform)
        if platform != 'google':
            raise OAuthError(f"Token refresh not supported for {platform}")

        result = self._google_token_call('refresh_token', refresh_token=refresh_token)
        return {
            'access_token': result.get('access_token'),
            'refresh_token': result.get('refresh_token') or refresh_token,
            'expires_in': result.get('expires_in', 3600)
        }

    def _google_token_call(self, grant_type: str, **fields) -> Dict:
        """POST to Google's token endpoint with the app credentials"""
        data = {
            'grant_type': grant_type,
            'client_id': self.config.GOOGLE_CLIENT_ID,
            'client_secret': self.config.GOOGLE_CLIENT_SECRET,
            **fields
        }
        result = self._post_json(GOOGLE_TOKEN_URL, data=data)
        if 'error' in result:
            logger.error(f"Google {grant_type} grant failed: {result['error']}")
            raise OAuthError(f"Google error: {result.get('error_description', result['error'])}")
        return result

    # ==========================================
    # ACCOUNT DISCOVERY
    # ==========================================

    def get_facebook_pages(self, access_token: str) -> list:
        """Get the Facebook Pages the user manages, with any linked Instagram account"""
        params = {
            'access_token': access_token,
            'fields': 'id,name,access_token,category,instagram_business_account{id,username}'
        }

        data = self._get_json(f"{GRAPH_API_URL}/me/accounts", params=params)

        if 'error' in data:
            raise OAuthError(f"Facebook error: {_error_message(data['error'])}")

        return data.get('data', [])

    def get_google_locations(self, access_token: str) -> list:
        """Get Google Business Profile locations"""
        headers = {'Authorization': f'Bearer {access_token}'}

        accounts_data = self._get_json(
            "https://mybusinessaccountmanagement.googleapis.com/v1/accounts", headers=headers
        )

        if 'error' in accounts_data:
            raise OAuthError(f"Google error: {_error_message(accounts_data['error'])}")

        locations = []
        for account in accounts_data.get('accounts', []):
            account_name = account.get('name', '')

            locations_data = self._get_json(
                f"https://mybusinessbusinessinformation.googleapis.com/v1/{account_name}/locations",
                headers=headers,
                params={'readMask': 'name,title,storefrontAddress'}
            )

            for location in locations_data.get('locations', []):
                address_lines = location.get('storefrontAddress', {}).get('addressLines') or ['']
                locations.append({
                    'id': location.get('name', '').split('/')[-1],
                    'name': location.get('title', 'Unknown Location'),
                    'address': address_lines[0],
                    'account_id': account_name.split('/')[-1]
                })

        return locations

    # ==========================================
    # VALIDATION
    # ==========================================

    def validate_token(self, platform: str, access_token: str) -> Dict:
        """
        Validate an access token is still valid

        Returns:
            Dict with 'valid', 'expires_at', 'scopes', etc.
        """
        platform = normalize_platform(platform)
        if platform == 'facebook':
            return self._validate_facebook_token(access_token)
        elif platform == 'google':
            return self._validate_google_token(access_token)
        return {'valid': False, 'error': 'Unknown platform'}

    def _validate_facebook_token(self, access_token: str) -> Dict:
        """Validate Facebook token"""
        params = {
            'input_token': access_token,
            'access_token': f"{self.config.FACEBOOK_APP_ID}|{self.config.FACEBOOK_APP_SECRET}"
        }

        data = self._get_json(f"{GRAPH_API_URL}/debug_token", params=params).get('data', {})

        return {
            'valid': data.get('is_valid', False),
            'expires_at': datetime.utcfromtimestamp(data['expires_at']).isoformat() if data.get('expires_at') else None,
            'scopes': data.get('scopes', []),
            'app_id': data.get('app_id'),
            'user_id': data.get('user_id')
        }

    def _validate_google_token(self, access_token: str) -> Dict:
        """Validate Google token"""
        data = self._get_json("https://oauth2.googleapis.com/tokeninfo", params={'access_token': access_token})

        if 'error' in data:
            return {'valid': False, 'error': data['error']}

        return {
            'valid': True,
            'expires_in': int(data.get('expires_in', 0)),
            'scope': data.get('scope', '')
        }

    # ==========================================
    # HTTP
    # ==========================================

    def _get_json(self, url: str, **kwargs) -> Dict:
        try:
            response = requests.get(url, timeout=30, **kwargs)
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"OAuth request to {url} failed: {e}")
            raise OAuthError(f"Could not reach provider: {e}")

    def _post_json(self, url: str, **kwargs) -> Dict:
        try:
            response = requests.post(url, timeout=30, **kwargs)
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"OAuth request to {url} failed: {e}")
            raise OAuthError(f"Could not reach provider: {e}")


def _error_message(error) -> str:
    if isinstance(error, dict):
        return error.get('message', 'Unknown error')
    return str(error)


def token_expiry_from(expires_in) -> Optional[datetime]:
    """Absolute expiry for an 'expires_in' seconds value"""
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    return datetime.utcnow() + timedelta(seconds=seconds)


class OAuthError(Exception):
    """OAuth-related error"""
    pass


# Singleton instance
_oauth_service = None


def get_oauth_service() -> OAuthService:
    """Get or create OAuth service instance"""
    global _oauth_service
    if _oauth_service is None:
        _oauth_service = OAuthService()
    return _oauth_service
