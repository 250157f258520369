"""
Ignyt - Retail Partner Routes
Partner CRUD, bulk import, tags and the partner's own post feed
"""
from flask import Blueprint, request, jsonify
import logging

from app.models.db_models import (
    DBUser, DBRetailPartner, UserRole, PartnerStatus, ValidationError
)
from app.routes.auth import (
    token_required, brand_or_admin_required, resolve_brand_id, validate_password
)
from app.services.db_service import DataService, DEFAULT_PARTNER_TAGS
from app.utils import safe_int

logger = logging.getLogger(__name__)
partners_bp = Blueprint('partners', __name__)
data_service = DataService()

EDITABLE_FIELDS = ['name', 'contact_email', 'contact_phone', 'address', 'footer_template']
PARTNER_USER_FIELDS = ['footer_template', 'contact_phone', 'contact_email', 'address']
ADMIN_LIST_LIMIT = 100
REQUIRED_FIELDS = ['name', 'contact_email']


def _build_partner(data: dict, brand_id: int, user_id: int = None) -> DBRetailPartner:
    """Create a partner from a payload or raise ValidationError"""
    if not data.get('name') or not data.get('contact_email'):
        raise ValidationError('name and contact_email are required')
    metadata = data.get('metadata') or {}
    if not isinstance(metadata, dict):
        raise ValidationError('metadata must be an object')
    return DBRetailPartner(
        name=data['name'],
        brand_id=brand_id,
        contact_email=data['contact_email'],
        contact_phone=data.get('contact_phone'),
        address=data.get('address'),
        footer_template=data.get('footer_template'),
        metadata=metadata,
        status=data.get('status') or PartnerStatus.PENDING,
        user_id=user_id
    )


def _blank_required_field(data: dict):
    """400 response when a payload clears a field the partner row cannot be without"""
    for key in REQUIRED_FIELDS:
        if key in data and not str(data[key] or '').strip():
            return jsonify({'error': f'{key} cannot be empty'}), 400
    return None


def _target_brand(current_user, data: dict):
    """Brand id for a create request: brand users own it, admins must name one"""
    brand_id = resolve_brand_id(current_user, data.get('brand_id') or request.args.get('brand_id'))
    if brand_id is None:
        return None, (jsonify({'error': 'brand_id is required'}), 400)
    brand = data_service.get_user(brand_id)
    if not brand or brand.role != UserRole.BRAND:
        return None, (jsonify({'error': 'Brand not found'}), 404)
    return brand_id, None


@partners_bp.route('/retail-partners', methods=['GET'])
@brand_or_admin_required
def list_partners(current_user):
    """
    List retail partners

    GET /api/retail-partners?status=active&brand_id=3
    Admins without brand_id get every brand's partners (first 100).
    """
    status = request.args.get('status')
    brand_id = resolve_brand_id(current_user, request.args.get('brand_id'))

    if brand_id is None:
        partners = data_service.get_partners(status=status, limit=ADMIN_LIST_LIMIT)
    else:
        partners = data_service.get_partners(brand_id, status=status)

    return jsonify([p.to_dict() for p in partners])


@partners_bp.route('/retail-partners/tags', methods=['GET'])
@token_required
def list_partner_tags(current_user):
    """Unique partner tags for the brand, or a starter list"""
    if current_user.is_partner:
        return jsonify({'error': 'Brand or admin access required'}), 403

    brand_id = resolve_brand_id(current_user, request.args.get('brand_id'))
    if brand_id is None:
        return jsonify(list(DEFAULT_PARTNER_TAGS))

    tags = data_service.get_partner_tags(brand_id)
    return jsonify(tags or list(DEFAULT_PARTNER_TAGS))


@partners_bp.route('/retail-partners/<int:partner_id>', methods=['GET'])
@token_required
def get_partner(current_user, partner_id):
    partner = data_service.get_partner(partner_id)
    if not partner:
        return jsonify({'error': 'Retail partner not found'}), 404
    if not current_user.can_access_partner(partner):
        return jsonify({'error': 'Access denied'}), 403
    return jsonify(partner.to_dict())


@partners_bp.route('/retail-partners', methods=['POST'])
@brand_or_admin_required
def create_partner(current_user):
    """
    Create a retail partner

    POST /api/retail-partners
    {
        "name": "Main Street Paints",
        "contact_email": "owner@mainstreet.com",
        "contact_phone": "555-0100",
        "address": "1 Main St",
        "footer_template": "Visit us at 1 Main St",
        "metadata": {"tags": ["Urban"]},
        "brand_id": 3            (admins only)
    }
    """
    data = request.get_json(silent=True) or {}

    brand_id, error = _target_brand(current_user, data)
    if error:
        return error

    try:
        partner = _build_partner(data, brand_id)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    data_service.save_partner(partner)
    logger.info(f"Partner {partner.id} created for brand {brand_id}")
    return jsonify(partner.to_dict()), 201


@partners_bp.route('/retail-partners/with-user', methods=['POST'])
@brand_or_admin_required
def create_partner_with_user(current_user):
    """
    Create a retail partner together with its partner login

    POST /api/retail-partners/with-user
    {
        "partner": {"name": "...", "contact_email": "..."},
        "user": {"username": "...", "email": "...", "name": "...", "password": "..."}
    }
    """
    data = request.get_json(silent=True) or {}
    partner_data = data.get('partner') or {}
    user_data = data.get('user') or {}

    brand_id, error = _target_brand(current_user, partner_data)
    if error:
        return error

    for field in ['username', 'email', 'name', 'password']:
        if not user_data.get(field):
            return jsonify({'error': f'user.{field} is required'}), 400

    is_valid, error_msg = validate_password(user_data['password'])
    if not is_valid:
        return jsonify({'error': error_msg}), 400

    if data_service.get_user_by_username(user_data['username']):
        return jsonify({'error': 'Username already exists'}), 400
    if data_service.get_user_by_email(user_data['email']):
        return jsonify({'error': 'Email already exists'}), 400

    try:
        partner = _build_partner(partner_data, brand_id)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    user = DBUser(
        username=user_data['username'],
        email=user_data['email'],
        name=user_data['name'],
        password=user_data['password'],
        role=UserRole.PARTNER
    )
    data_service.save_user(user)

    partner.user_id = user.id
    data_service.save_partner(partner)

    return jsonify({
        'partner': partner.to_dict(),
        'user': user.to_dict()
    }), 201


@partners_bp.route('/retail-partners/<int:partner_id>', methods=['PATCH', 'PUT'])
@token_required
def update_partner(current_user, partner_id):
    """
    Update a retail partner

    Partner users may only change their footer and contact details.
    """
    partner = data_service.get_partner(partner_id)
    if not partner:
        return jsonify({'error': 'Retail partner not found'}), 404
    if not current_user.can_access_partner(partner):
        return jsonify({'error': 'Access denied'}), 403

    data = request.get_json(silent=True) or {}

    if current_user.is_partner:
        updates = {k: data[k] for k in PARTNER_USER_FIELDS if k in data}
        if not updates:
            return jsonify({'error': 'No valid fields to update'}), 400
        error = _blank_required_field(updates)
        if error:
            return error
        for key, value in updates.items():
            setattr(partner, key, value)
        data_service.save_partner(partner)
        return jsonify(partner.to_dict())

    error = _blank_required_field(data)
    if error:
        return error

    for key in EDITABLE_FIELDS:
        if key in data:
            setattr(partner, key, data[key])

    if 'metadata' in data:
        if not isinstance(data['metadata'], dict):
            data_service.rollback()
            return jsonify({'error': 'metadata must be an object'}), 400
        partner.set_metadata(data['metadata'])

    if 'user_id' in data:
        partner.user_id = safe_int(data['user_id'], None)

    if 'status' in data:
        try:
            partner.set_status(data['status'])
        except ValidationError as e:
            data_service.rollback()
            return jsonify({'error': str(e)}), 400

    data_service.save_partner(partner)
    return jsonify(partner.to_dict())


@partners_bp.route('/retail-partners/bulk', methods=['POST'])
@brand_or_admin_required
def bulk_import_partners(current_user):
    """
    Bulk import retail partners

    POST /api/retail-partners/bulk
    {"partners": [{"name": "...", "contact_email": "..."}, ...]}

    Rows that fail validation are reported back; the rest are created.
    """
    data = request.get_json(silent=True) or {}
    rows = data.get('partners')

    if not isinstance(rows, list) or not rows:
        return jsonify({'error': 'partners must be a non-empty array'}), 400

    brand_id, error = _target_brand(current_user, data)
    if error:
        return error

    created = []
    errors = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            errors.append({'index': index, 'partner': f'Partner at index {index}', 'error': 'Row must be an object'})
            continue
        try:
            created.append(_build_partner(row, brand_id))
        except ValidationError as e:
            errors.append({
                'index': index,
                'partner': row.get('name') or f'Partner at index {index}',
                'error': str(e)
            })

    if created:
        data_service.save_partners(created)

    logger.info(f"Bulk import for brand {brand_id}: {len(created)} created, {len(errors)} rejected")

    response = {
        'success': True,
        'created': len(created),
        'partners': [p.to_dict() for p in created]
    }
    if errors:
        response['errors'] = errors
    return jsonify(response), 201


@partners_bp.route('/retail-partners/<int:partner_id>/social-accounts', methods=['GET'])
@token_required
def list_partner_accounts(current_user, partner_id):
    partner = data_service.get_partner(partner_id)
    if not partner:
        return jsonify({'error': 'Retail partner not found'}), 404
    if not current_user.can_access_partner(partner):
        return jsonify({'error': 'Access denied'}), 403

    accounts = data_service.get_accounts_for_partner(partner_id)
    return jsonify([a.to_dict() for a in accounts])


@partners_bp.route('/partner/posts', methods=['GET'])
@token_required
def partner_posts(current_user):
    """Assignments (with their posts) for the partner rows of a partner login"""
    if not current_user.is_partner:
        return jsonify({'error': 'This endpoint is only for partner users'}), 403

    partner_ids = [p.id for p in data_service.get_partners_for_user(current_user.id)]
    assignments = data_service.get_assignments_for_partners(partner_ids)

    result = []
    for assignment in assignments:
        item = assignment.to_dict()
        post = data_service.get_post(assignment.post_id)
        item['post'] = post.to_dict() if post else None
        result.append(item)

    return jsonify(result)
