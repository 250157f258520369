"""
Ignyt - Partner Invite Routes
Email invitations that let a retailer create a partner login
"""
from flask import Blueprint, request, jsonify, current_app
from datetime import datetime, timedelta
import secrets
import logging

from app.models.db_models import (
    DBUser, DBRetailPartner, DBPartnerInvite, UserRole, PartnerStatus
)
from app.routes.auth import (
    token_required, brand_or_admin_required, resolve_brand_id,
    validate_password, generate_token
)
from app.services.db_service import DataService
from app.services.email_service import get_email_service

logger = logging.getLogger(__name__)
invites_bp = Blueprint('invites', __name__)
data_service = DataService()


def _invite_url(token: str) -> str:
    return f"{current_app.config.get('APP_URL', '').rstrip('/')}/accept-invite?token={token}"


def _usable_invite(token):
    """Return (invite, error_response) for a token that can still be accepted"""
    if not token:
        return None, (jsonify({'error': 'Invalid invitation token'}), 400)
    invite = data_service.get_invite_by_token(token)
    if not invite:
        return None, (jsonify({'error': 'Invitation not found'}), 404)
    if invite.accepted_at is not None:
        return None, (jsonify({'error': 'Invitation has already been accepted'}), 410)
    if invite.is_expired():
        return None, (jsonify({'error': 'Invitation has expired'}), 410)
    return invite, None


@invites_bp.route('', methods=['POST'])
@brand_or_admin_required
def create_invite(current_user):
    """
    Invite a retailer

    POST /api/partner-invites
    {
        "email": "owner@mainstreet.com",
        "name": "Main Street Paints",
        "message": "We'd love to have you on board",
        "brand_id": 3            (admins only)
    }
    """
    data = request.get_json(silent=True) or {}

    brand_id = resolve_brand_id(current_user, data.get('brand_id'))
    if brand_id is None:
        return jsonify({'error': 'brand_id is required'}), 400
    brand = data_service.get_user(brand_id)
    if not brand or brand.role != UserRole.BRAND:
        return jsonify({'error': 'Brand not found'}), 404

    email = (data.get('email') or '').strip()
    if not email or '@' not in email:
        return jsonify({'error': 'A valid email is required'}), 400
    if not data.get('name'):
        return jsonify({'error': 'name is required'}), 400

    expiry_days = current_app.config.get('INVITE_EXPIRY_DAYS', 7)
    invite = DBPartnerInvite(
        token=secrets.token_urlsafe(32),
        brand_id=brand_id,
        email=email,
        name=data['name'],
        expires_at=datetime.utcnow() + timedelta(days=expiry_days),
        message=data.get('message')
    )
    data_service.save_invite(invite)

    invite_url = _invite_url(invite.token)
    email_sent = get_email_service().send_partner_invite(
        to=invite.email,
        partner_name=invite.name,
        brand_name=brand.name,
        invite_url=invite_url,
        expires_at=invite.expires_at,
        message=invite.message
    )
    if not email_sent:
        logger.warning(f"Invite {invite.id} saved but email to {invite.email} was not sent")

    return jsonify({
        'message': 'Invitation created',
        'invite': invite.to_dict(),
        'invite_url': invite_url,
        'email_sent': email_sent
    }), 201


@invites_bp.route('/verify', methods=['GET'])
def verify_invite():
    """
    Check an invite before showing the signup form

    GET /api/partner-invites/verify?token=xxx
    """
    invite, error = _usable_invite(request.args.get('token'))
    if error:
        return error

    brand = data_service.get_user(invite.brand_id)
    return jsonify({
        'valid': True,
        'email': invite.email,
        'name': invite.name,
        'brand_name': brand.name if brand else None,
        'expires_at': invite.expires_at.isoformat()
    })


@invites_bp.route('', methods=['GET'])
@brand_or_admin_required
def list_invites(current_user):
    """Pending invites for the brand"""
    brand_id = resolve_brand_id(current_user, request.args.get('brand_id'))
    if brand_id is None:
        return jsonify({'error': 'brand_id is required'}), 400
    return jsonify([i.to_dict() for i in data_service.get_active_invites(brand_id)])


@invites_bp.route('/<token>', methods=['DELETE'])
@token_required
def cancel_invite(current_user, token):
    invite = data_service.get_invite_by_token(token)
    if not invite:
        return jsonify({'error': 'Invitation not found'}), 404
    if not current_user.can_access_brand(invite.brand_id):
        return jsonify({'error': 'You do not have permission to cancel this invitation'}), 403

    data_service.delete_invite(invite)
    return jsonify({'message': 'Invitation cancelled successfully'})


@invites_bp.route('/accept', methods=['POST'])
def accept_invite():
    """
    Accept an invite: creates the partner login and the retail partner

    POST /api/partner-invites/accept
    {
        "token": "xxx",
        "username": "mainstreet",
        "password": "password123",
        "name": "Jane Owner"
    }
    """
    data = request.get_json(silent=True) or {}

    invite, error = _usable_invite(data.get('token'))
    if error:
        return error

    if not data.get('username') or not data.get('password'):
        return jsonify({'error': 'username and password are required'}), 400

    is_valid, error_msg = validate_password(data['password'])
    if not is_valid:
        return jsonify({'error': error_msg}), 400

    if data_service.get_user_by_username(data['username']):
        return jsonify({'error': 'Username already exists'}), 400
    if data_service.get_user_by_email(invite.email):
        return jsonify({'error': 'An account with this email already exists'}), 400

    user = DBUser(
        username=data['username'],
        email=invite.email,
        name=data.get('name') or invite.name,
        password=data['password'],
        role=UserRole.PARTNER
    )
    data_service.save_user(user)

    partner = DBRetailPartner(
        name=invite.name,
        brand_id=invite.brand_id,
        contact_email=invite.email,
        user_id=user.id,
        status=PartnerStatus.ACTIVE
    )
    data_service.save_partner(partner)

    invite.accepted_at = datetime.utcnow()
    invite.partner_id = partner.id
    data_service.save_invite(invite)

    logger.info(f"Invite {invite.id} accepted: partner {partner.id} joined brand {invite.brand_id}")

    return jsonify({
        'token': generate_token(user),
        'user': user.to_dict(),
        'partner': partner.to_dict()
    }), 201
