"""
Ignyt - Social Account Routes
Connected partner accounts, ad-hoc publishing and platform insights
"""
from flask import Blueprint, request, jsonify
import logging

from app.models.db_models import DBSocialAccount, AccountStatus, Platform
from app.routes.auth import token_required, resolve_brand_id
from app.services.db_service import DataService
from app.services.social_service import SocialService, to_unix
from app.utils import safe_int, parse_datetime

logger = logging.getLogger(__name__)

social_bp = Blueprint('social', __name__)
social_service = SocialService()
data_service = DataService()


def _accessible_account(current_user, account_id):
    """Return (account, error_response)"""
    account = data_service.get_account(account_id)
    if not account:
        return None, (jsonify({'error': 'Social account not found'}), 404)
    partner = data_service.get_partner(account.partner_id)
    if not partner or not current_user.can_access_partner(partner):
        return None, (jsonify({'error': 'Access denied'}), 403)
    return account, None


@social_bp.route('', methods=['GET'])
@token_required
def list_accounts(current_user):
    """
    List social accounts

    GET /api/social-accounts?partner_id=5
    Brands see accounts of all their partners, partner users their own.
    """
    partner_id = safe_int(request.args.get('partner_id'), None)

    if partner_id is not None:
        partner = data_service.get_partner(partner_id)
        if not partner:
            return jsonify({'error': 'Retail partner not found'}), 404
        if not current_user.can_access_partner(partner):
            return jsonify({'error': 'Access denied'}), 403
        accounts = data_service.get_accounts_for_partner(partner_id)
    elif current_user.is_partner:
        accounts = []
        for partner in data_service.get_partners_for_user(current_user.id):
            accounts.extend(data_service.get_accounts_for_partner(partner.id))
    else:
        brand_id = resolve_brand_id(current_user, request.args.get('brand_id'))
        if brand_id is None:
            return jsonify({'error': 'brand_id or partner_id is required'}), 400
        accounts = data_service.get_accounts_for_brand(brand_id)

    return jsonify([a.to_dict() for a in accounts])


@social_bp.route('', methods=['POST'])
@token_required
def create_account(current_user):
    """
    Register a social account directly (tokens obtained outside the OAuth flow)

    POST /api/social-accounts
    {
        "partner_id": 5,
        "platform": "facebook",
        "account_id": "1234567890",
        "account_name": "Main Street Paints",
        "access_token": "EAAB...",
        "refresh_token": null,
        "token_expiry": "2026-12-01T00:00:00Z"
    }
    """
    data = request.get_json(silent=True) or {}

    for field in ['partner_id', 'platform', 'account_id', 'account_name', 'access_token']:
        if not data.get(field):
            return jsonify({'error': f'{field} is required'}), 400

    partner = data_service.get_partner(safe_int(data['partner_id'], None))
    if not partner:
        return jsonify({'error': 'Retail partner not found'}), 404
    if not current_user.can_access_partner(partner):
        return jsonify({'error': 'Access denied'}), 403

    if data_service.get_account_by_platform_id(data['platform'], data['account_id']):
        return jsonify({'error': 'This account is already connected'}), 409

    try:
        account = DBSocialAccount(
            partner_id=partner.id,
            platform=data['platform'],
            account_id=data['account_id'],
            account_name=data['account_name'],
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token'),
            token_expiry=parse_datetime(data.get('token_expiry'))
        )
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    data_service.save_account(account)
    logger.info(f"{account.platform} account {account.account_id} added to partner {partner.id}")
    return jsonify(account.to_dict()), 201


@social_bp.route('/<int:account_id>', methods=['PATCH'])
@token_required
def update_account(current_user, account_id):
    account, error = _accessible_account(current_user, account_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}

    if 'status' in data:
        if data['status'] not in AccountStatus.ALL:
            return jsonify({'error': f"status must be one of: {', '.join(AccountStatus.ALL)}"}), 400
        account.status = data['status']
    if data.get('account_name'):
        account.account_name = data['account_name']

    data_service.save_account(account)
    return jsonify(account.to_dict())


@social_bp.route('/<int:account_id>', methods=['DELETE'])
@token_required
def delete_account(current_user, account_id):
    account, error = _accessible_account(current_user, account_id)
    if error:
        return error

    data_service.delete_account(account)
    return jsonify({'message': 'Social account disconnected'})


@social_bp.route('/<int:account_id>/publish', methods=['POST'])
@token_required
def publish_to_account(current_user, account_id):
    """
    Publish ad-hoc content to one account

    POST /api/social-accounts/7/publish
    {
        "message": "Spring sale starts Friday",
        "image_url": "https://...",
        "scheduled_time": "2026-11-01T15:00:00Z"     (Facebook only)
    }
    """
    account, error = _accessible_account(current_user, account_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    message = data.get('message')
    image_url = data.get('image_url')

    if not message and not image_url:
        return jsonify({'error': 'message or image_url is required'}), 400

    if account.platform == Platform.INSTAGRAM and not image_url:
        return jsonify({'error': 'Instagram posts require an image'}), 400

    if not account.is_usable:
        return jsonify({'error': 'Account is not active or its token has expired - please reconnect'}), 400

    try:
        scheduled_time = parse_datetime(data.get('scheduled_time'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if scheduled_time and account.platform != Platform.FACEBOOK:
        return jsonify({'error': 'Scheduled publishing is only supported for Facebook'}), 400

    result = social_service.publish(
        account, message or '', image_url=image_url, scheduled_time=scheduled_time
    )

    if not result.get('success'):
        logger.warning(f"Ad-hoc publish to account {account.id} failed: {result.get('error')}")
        return jsonify({'error': result.get('error', 'Publish failed')}), 502

    return jsonify(result)


@social_bp.route('/<int:account_id>/insights', methods=['GET'])
@token_required
def account_insights(current_user, account_id):
    """
    Platform insights for one account

    GET /api/social-accounts/7/insights?metrics=page_impressions&since=2026-10-01&until=2026-10-15
    GET /api/social-accounts/8/insights?period=week      (Instagram)
    """
    account, error = _accessible_account(current_user, account_id)
    if error:
        return error

    metrics = [m for m in (request.args.get('metrics') or '').split(',') if m] or None

    if account.platform == Platform.FACEBOOK:
        try:
            since = parse_datetime(request.args.get('since'))
            until = parse_datetime(request.args.get('until'))
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        result = social_service.get_facebook_insights(
            account.account_id,
            account.access_token,
            metrics=metrics,
            since=to_unix(since) if since else None,
            until=to_unix(until) if until else None
        )
    elif account.platform == Platform.INSTAGRAM:
        result = social_service.get_instagram_insights(
            account.account_id,
            account.access_token,
            metrics=metrics,
            period=request.args.get('period', 'day')
        )
    else:
        return jsonify({'error': f'Insights are not available for {account.platform}'}), 400

    if not result.get('success'):
        return jsonify({'error': result.get('error')}), 502

    return jsonify({
        'account_id': account.id,
        'platform': account.platform,
        'data': result['data']
    })
