"""
Ignyt - OAuth Routes
Connects retail partner Facebook Pages, Instagram business accounts and
Google Business Profile locations
"""
from flask import Blueprint, request, jsonify, redirect
from urllib.parse import urlencode
import logging

from app.models.db_models import DBSocialAccount, AccountStatus, PartnerStatus, Platform
from app.routes.auth import token_required
from app.services.db_service import DataService
from app.services.oauth_service import (
    get_oauth_service, normalize_platform, token_expiry_from,
    OAuthConfig, OAuthState, OAuthError
)
from app.utils import safe_int

logger = logging.getLogger(__name__)
oauth_bp = Blueprint('oauth', __name__)
data_service = DataService()

SUPPORTED_PLATFORMS = ['facebook', 'google']


def _connect_redirect(**params):
    """Send the browser back to the partner connect page"""
    return redirect(f"{OAuthConfig().APP_URL}/partner-connect?{urlencode(params)}")


def _authorized_state(current_user, state: str, platform: str):
    """Return (state_data, partner, error_response) for a stashed token state"""
    state_data = OAuthState.peek(state)
    if not state_data or not state_data.get('token'):
        return None, None, (jsonify({'error': 'Invalid or expired state'}), 400)
    if state_data['platform'] != platform:
        return None, None, (jsonify({'error': 'State was issued for another platform'}), 400)

    partner = data_service.get_partner(state_data['partner_id'])
    if not partner:
        return None, None, (jsonify({'error': 'Retail partner not found'}), 404)
    if not current_user.can_access_partner(partner):
        return None, None, (jsonify({'error': 'Access denied'}), 403)
    return state_data, partner, None


def _upsert_account(partner_id: int, platform: str, account_id: str, account_name: str,
                    access_token: str, refresh_token=None, token_expiry=None) -> DBSocialAccount:
    """Create or refresh the account row for (platform, account_id)"""
    account = data_service.get_account_by_platform_id(platform, account_id)
    if account:
        account.partner_id = partner_id
        account.account_name = account_name
        account.access_token = access_token
        if refresh_token:
            account.refresh_token = refresh_token
        account.token_expiry = token_expiry
        account.status = AccountStatus.ACTIVE
    else:
        account = DBSocialAccount(
            partner_id=partner_id,
            platform=platform,
            account_id=account_id,
            account_name=account_name,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expiry=token_expiry
        )
    return data_service.save_account(account)


# ==========================================
# OAUTH CONFIGURATION CHECK
# ==========================================

@oauth_bp.route('/config', methods=['GET'])
@token_required
def get_oauth_config(current_user):
    """
    Get OAuth configuration status for all platforms

    GET /api/oauth/config
    """
    config = OAuthConfig()
    return jsonify({
        'platforms': {
            'facebook': {
                'configured': config.is_configured('facebook'),
                'name': 'Facebook / Instagram',
                'description': 'Connect Facebook Pages and Instagram Business accounts'
            },
            'google': {
                'configured': config.is_configured('google'),
                'name': 'Google Business Profile',
                'description': 'Connect Google Business Profile locations'
            }
        },
        'callback_base': config.APP_URL
    })


# ==========================================
# AUTHORIZATION INITIATION
# ==========================================

@oauth_bp.route('/authorize/<platform>', methods=['POST'])
@token_required
def initiate_oauth(current_user, platform):
    """
    Initiate OAuth flow for a partner

    POST /api/oauth/authorize/{platform}
    {
        "partner_id": 5
    }

    Returns URL to redirect the user to for authorization
    """
    platform = normalize_platform(platform)
    if platform not in SUPPORTED_PLATFORMS:
        return jsonify({'error': f'Unsupported platform: {platform}'}), 400

    data = request.get_json(silent=True) or {}
    partner_id = safe_int(data.get('partner_id'), None)
    if partner_id is None:
        return jsonify({'error': 'partner_id is required'}), 400

    partner = data_service.get_partner(partner_id)
    if not partner:
        return jsonify({'error': 'Retail partner not found'}), 404
    if not current_user.can_access_partner(partner):
        return jsonify({'error': 'Access denied'}), 403

    if not OAuthConfig().is_configured(platform):
        return jsonify({'error': f'OAuth not configured for {platform}'}), 400

    try:
        auth_url, state = get_oauth_service().get_auth_url(platform, partner_id, current_user.id)
    except OAuthError as e:
        return jsonify({'error': str(e)}), 400

    logger.info(f"OAuth initiated for {platform}, partner {partner_id}, user {current_user.id}")

    return jsonify({
        'auth_url': auth_url,
        'state': state,
        'platform': platform,
        'partner_id': partner_id
    })


# ==========================================
# OAUTH CALLBACKS
# ==========================================

@oauth_bp.route('/callback/<platform>', methods=['GET'])
def oauth_callback(platform):
    """
    OAuth callback handler

    GET /api/oauth/callback/{platform}?code=xxx&state=xxx

    Called by the provider after the user authorizes. The exchanged token is
    kept server-side under a fresh state that the connect page passes back.
    """
    platform = normalize_platform(platform)
    code = request.args.get('code')
    error = request.args.get('error')

    if error:
        logger.warning(f"OAuth error for {platform}: {error} - {request.args.get('error_description', '')}")
        return _connect_redirect(oauth_error=error, platform=platform)

    state_data = OAuthState.validate(request.args.get('state'))
    if not state_data or state_data['platform'] != platform:
        logger.warning(f"Invalid OAuth state for {platform}")
        return _connect_redirect(oauth_error='invalid_state', platform=platform)

    if not code:
        return _connect_redirect(oauth_error='missing_code', platform=platform)

    partner_id = state_data['partner_id']

    try:
        token_data = get_oauth_service().exchange_code(platform, code)
    except OAuthError as e:
        logger.error(f"OAuth exchange failed for {platform}: {e}")
        return _connect_redirect(oauth_error=str(e), platform=platform)

    temp_state = OAuthState.generate(partner_id, state_data['user_id'], platform, token=token_data)

    logger.info(f"OAuth successful for {platform}, partner {partner_id}")
    return _connect_redirect(state=temp_state, platform=platform, partner_id=partner_id)


# ==========================================
# ACCOUNT DISCOVERY (After OAuth)
# ==========================================

@oauth_bp.route('/accounts/<platform>', methods=['POST'])
@token_required
def get_available_accounts(current_user, platform):
    """
    Pages or locations the authorized user can connect

    POST /api/oauth/accounts/{platform}
    {
        "state": "temp_state"
    }
    """
    platform = normalize_platform(platform)
    data = request.get_json(silent=True) or {}

    state_data, partner, error = _authorized_state(current_user, data.get('state'), platform)
    if error:
        return error

    access_token = state_data['token'].get('access_token')
    oauth_service = get_oauth_service()

    try:
        if platform == 'facebook':
            pages = oauth_service.get_facebook_pages(access_token)
            accounts = []
            for page in pages:
                instagram = page.get('instagram_business_account')
                accounts.append({
                    'id': page.get('id'),
                    'name': page.get('name'),
                    'category': page.get('category'),
                    'instagram': {
                        'id': instagram.get('id'),
                        'username': instagram.get('username')
                    } if instagram else None
                })
        else:
            accounts = oauth_service.get_google_locations(access_token)
    except OAuthError as e:
        return jsonify({'error': str(e)}), 502

    return jsonify({
        'platform': platform,
        'partner_id': partner.id,
        'accounts': accounts
    })


# ==========================================
# CONNECTION
# ==========================================

@oauth_bp.route('/connect/<platform>', methods=['POST'])
@token_required
def finalize_connection(current_user, platform):
    """
    Store the selected page or location as social account(s)

    POST /api/oauth/connect/facebook
    {"state": "temp_state", "page_id": "1234"}

    POST /api/oauth/connect/google
    {"state": "temp_state", "location_id": "5678"}

    A Facebook page with a linked Instagram business account connects both.
    """
    platform = normalize_platform(platform)
    data = request.get_json(silent=True) or {}
    state = data.get('state')

    state_data, partner, error = _authorized_state(current_user, state, platform)
    if error:
        return error

    token = state_data['token']
    oauth_service = get_oauth_service()
    token_expiry = token_expiry_from(token.get('expires_in'))
    connected = []

    try:
        if platform == 'facebook':
            page_id = str(data.get('page_id') or '')
            if not page_id:
                return jsonify({'error': 'page_id is required'}), 400

            pages = oauth_service.get_facebook_pages(token.get('access_token'))
            page = next((p for p in pages if str(p.get('id')) == page_id), None)
            if not page:
                return jsonify({'error': 'Page not found for this login'}), 404

            # Page token publishes to both the page and its Instagram account
            page_token = page.get('access_token') or token.get('access_token')
            connected.append(_upsert_account(
                partner.id, Platform.FACEBOOK, page_id, page.get('name', ''),
                page_token, token_expiry=token_expiry
            ))

            instagram = page.get('instagram_business_account')
            if instagram and instagram.get('id'):
                connected.append(_upsert_account(
                    partner.id, Platform.INSTAGRAM, str(instagram['id']),
                    instagram.get('username') or page.get('name', ''),
                    page_token, token_expiry=token_expiry
                ))
        else:
            location_id = str(data.get('location_id') or '')
            if not location_id:
                return jsonify({'error': 'location_id is required'}), 400

            locations = oauth_service.get_google_locations(token.get('access_token'))
            location = next((loc for loc in locations if str(loc.get('id')) == location_id), None)
            if not location:
                return jsonify({'error': 'Location not found for this login'}), 404

            connected.append(_upsert_account(
                partner.id, Platform.GOOGLE, location_id, location.get('name', ''),
                token.get('access_token'),
                refresh_token=token.get('refresh_token'),
                token_expiry=token_expiry
            ))
    except OAuthError as e:
        return jsonify({'error': str(e)}), 502

    OAuthState.validate(state)

    if partner.status == PartnerStatus.PENDING:
        partner.set_status(PartnerStatus.ACTIVE)
        data_service.save_partner(partner)

    logger.info(
        f"Connected {', '.join(a.platform for a in connected)} for partner {partner.id}"
    )

    return jsonify({
        'success': True,
        'partner': partner.to_dict(),
        'accounts': [a.to_dict() for a in connected]
    })


# ==========================================
# TOKEN VALIDATION & REFRESH
# ==========================================

@oauth_bp.route('/validate/<int:account_id>', methods=['GET'])
@token_required
def validate_connection(current_user, account_id):
    """Ask the provider whether an account's token still works"""
    account = data_service.get_account(account_id)
    if not account:
        return jsonify({'error': 'Social account not found'}), 404
    partner = data_service.get_partner(account.partner_id)
    if not partner or not current_user.can_access_partner(partner):
        return jsonify({'error': 'Access denied'}), 403

    try:
        result = get_oauth_service().validate_token(account.platform, account.access_token)
    except OAuthError as e:
        return jsonify({'valid': False, 'error': str(e)}), 502

    return jsonify({'account_id': account.id, 'platform': account.platform, **result})


@oauth_bp.route('/refresh/<int:account_id>', methods=['POST'])
@token_required
def refresh_connection(current_user, account_id):
    """
    Refresh a Google token

    POST /api/oauth/refresh/{account_id}
    """
    account = data_service.get_account(account_id)
    if not account:
        return jsonify({'error': 'Social account not found'}), 404
    partner = data_service.get_partner(account.partner_id)
    if not partner or not current_user.can_access_partner(partner):
        return jsonify({'error': 'Access denied'}), 403

    if not account.refresh_token:
        return jsonify({
            'error': 'No refresh token available. Please reconnect.',
            'reconnect_required': True
        }), 400

    try:
        new_tokens = get_oauth_service().refresh_token(account.platform, account.refresh_token)
    except OAuthError as e:
        logger.warning(f"Token refresh failed for account {account.id}: {e}")
        return jsonify({'error': str(e), 'reconnect_required': True}), 400

    account.access_token = new_tokens['access_token']
    if new_tokens.get('refresh_token'):
        account.refresh_token = new_tokens['refresh_token']
    account.token_expiry = token_expiry_from(new_tokens.get('expires_in'))
    account.status = AccountStatus.ACTIVE
    data_service.save_account(account)

    return jsonify({'success': True, 'account': account.to_dict()})
