"""
Ignyt - Content Post Routes
Brand posts, the content calendar, scheduling and evergreen rotation
"""
from flask import Blueprint, request, jsonify
import logging

from app.models.db_models import DBContentPost, PostStatus, ValidationError
from app.routes.auth import token_required, brand_or_admin_required, resolve_brand_id
from app.services.db_service import DataService
from app.services.distribution_service import (
    DistributionService, DistributionError, is_rotation_parent
)
from app.utils import safe_bool, parse_datetime, parse_id_list

logger = logging.getLogger(__name__)
content_bp = Blueprint('content', __name__)
data_service = DataService()
distribution_service = DistributionService(data_service=data_service)

EDITABLE_FIELDS = ['title', 'description', 'image_url']
PUBLISHED_BY_DISTRIBUTION = 'Posts are published through their partner assignments'


def accessible_post(current_user, post_id, write=False):
    """
    Return (post, error_response).

    Brands reach their own posts; partner users may read posts assigned to them.
    """
    post = data_service.get_post(post_id)
    if not post:
        return None, (jsonify({'error': 'Post not found'}), 404)
    if current_user.can_access_brand(post.brand_id):
        return post, None
    if not write and current_user.is_partner:
        for partner in data_service.get_partners_for_user(current_user.id):
            if data_service.get_assignment_for(post.id, partner.id):
                return post, None
    return None, (jsonify({'error': 'Access denied'}), 403)


def _post_with_assignments(post: DBContentPost) -> dict:
    result = post.to_dict()
    assignments = []
    for assignment in data_service.get_assignments_for_post(post.id):
        item = assignment.to_dict()
        partner = data_service.get_partner(assignment.partner_id)
        item['partner_name'] = partner.name if partner else None
        assignments.append(item)
    result['assignments'] = assignments
    return result


def _scope_brand(current_user):
    """Brand for list endpoints; admins without brand_id see every brand"""
    return resolve_brand_id(current_user, request.args.get('brand_id'))


@content_bp.route('', methods=['GET'])
@brand_or_admin_required
def list_posts(current_user):
    """
    List content posts

    GET /api/content-posts?status=scheduled&evergreen=false
    """
    evergreen = request.args.get('evergreen')
    posts = data_service.get_posts(
        _scope_brand(current_user),
        status=request.args.get('status'),
        is_evergreen=safe_bool(evergreen) if evergreen is not None else None
    )
    return jsonify([p.to_dict() for p in posts])


@content_bp.route('/evergreen', methods=['GET'])
@brand_or_admin_required
def list_evergreen(current_user):
    """Evergreen library, without the rotation posts built from it"""
    posts = data_service.get_posts(_scope_brand(current_user), is_evergreen=True)
    return jsonify([p.to_dict() for p in posts if not is_rotation_parent(p)])


@content_bp.route('/calendar', methods=['GET'])
@brand_or_admin_required
def calendar(current_user):
    """
    Scheduled and published posts with their assignments

    GET /api/content-posts/calendar?start=2026-10-01&end=2026-10-31
    """
    brand_id = _scope_brand(current_user)
    if brand_id is None:
        return jsonify({'error': 'brand_id is required'}), 400

    try:
        start = parse_datetime(request.args.get('start'))
        end = parse_datetime(request.args.get('end'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    posts = data_service.get_calendar_posts(brand_id, start, end)
    return jsonify([_post_with_assignments(p) for p in posts])


@content_bp.route('/<int:post_id>', methods=['GET'])
@token_required
def get_post(current_user, post_id):
    post, error = accessible_post(current_user, post_id)
    if error:
        return error
    return jsonify(_post_with_assignments(post))


@content_bp.route('', methods=['POST'])
@brand_or_admin_required
def create_post(current_user):
    """
    Create a content post

    POST /api/content-posts
    {
        "title": "Spring colours are here",
        "description": "Fresh palettes for every room",
        "platforms": ["facebook", "instagram"],
        "image_url": "/uploads/media-abc.jpg",
        "scheduled_date": "2026-11-01T15:00:00Z",
        "status": "scheduled",
        "is_evergreen": false,
        "partner_ids": [5, 6],
        "custom_footer": "...",
        "custom_tags": "spring, paint",
        "brand_id": 3            (admins only)
    }
    """
    data = request.get_json(silent=True) or {}

    brand_id = resolve_brand_id(current_user, data.get('brand_id'))
    if brand_id is None:
        return jsonify({'error': 'brand_id is required'}), 400

    for field in ['title', 'description', 'platforms']:
        if not data.get(field):
            return jsonify({'error': f'{field} is required'}), 400

    if data.get('status') == PostStatus.PUBLISHED:
        return jsonify({'error': PUBLISHED_BY_DISTRIBUTION}), 400

    metadata = data.get('metadata') or {}
    if not isinstance(metadata, dict):
        return jsonify({'error': 'metadata must be an object'}), 400

    try:
        post = DBContentPost(
            brand_id=brand_id,
            creator_id=current_user.id,
            title=data['title'],
            description=data['description'],
            platforms=data['platforms'],
            image_url=data.get('image_url'),
            scheduled_date=parse_datetime(data.get('scheduled_date')),
            is_evergreen=safe_bool(data.get('is_evergreen')),
            metadata=metadata,
            status=data.get('status') or PostStatus.DRAFT
        )
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    partner_ids = parse_id_list(data.get('partner_ids'))

    # Validate partners before anything is written
    if partner_ids:
        partners = data_service.get_partners_by_ids(partner_ids)
        if len(partners) != len(partner_ids):
            return jsonify({'error': 'One or more partners not found'}), 404
        if any(p.brand_id != brand_id for p in partners):
            return jsonify({'error': 'Partners must belong to this brand'}), 403

    data_service.save_post(post)

    assignments = []
    if partner_ids:
        try:
            assignments = distribution_service.assign_post(
                post, partner_ids, data.get('custom_footer'), data.get('custom_tags')
            )
        except DistributionError as e:
            return jsonify({'error': e.message}), e.status_code

    logger.info(f"Post {post.id} created for brand {brand_id} ({len(assignments)} assignment(s))")

    result = post.to_dict()
    result['assignments'] = [a.to_dict() for a in assignments]
    return jsonify(result), 201


@content_bp.route('/<int:post_id>', methods=['PATCH', 'PUT'])
@brand_or_admin_required
def update_post(current_user, post_id):
    post, error = accessible_post(current_user, post_id, write=True)
    if error:
        return error

    data = request.get_json(silent=True) or {}

    if data.get('status') == PostStatus.PUBLISHED and post.status != PostStatus.PUBLISHED:
        return jsonify({'error': PUBLISHED_BY_DISTRIBUTION}), 400

    try:
        for key in EDITABLE_FIELDS:
            if key in data:
                setattr(post, key, data[key])
        if not post.title or not post.description:
            raise ValidationError('title and description cannot be empty')

        if 'platforms' in data:
            post.set_platforms(data['platforms'])
        if 'scheduled_date' in data:
            post.scheduled_date = parse_datetime(data['scheduled_date'])
        if 'is_evergreen' in data:
            post.is_evergreen = safe_bool(data['is_evergreen'])
        if 'metadata' in data:
            if not isinstance(data['metadata'], dict):
                raise ValidationError('metadata must be an object')
            post.set_metadata(data['metadata'])
        if 'status' in data:
            post.set_status(data['status'])
        elif post.status == PostStatus.SCHEDULED:
            post.set_status(PostStatus.SCHEDULED)
    except ValueError as e:
        data_service.rollback()
        return jsonify({'error': str(e)}), 400

    data_service.save_post(post)
    return jsonify(post.to_dict())


@content_bp.route('/<int:post_id>', methods=['DELETE'])
@brand_or_admin_required
def delete_post(current_user, post_id):
    post, error = accessible_post(current_user, post_id, write=True)
    if error:
        return error

    data_service.delete_post(post)
    logger.info(f"Post {post_id} deleted by user {current_user.id}")
    return jsonify({'message': 'Post deleted'})


@content_bp.route('/<int:post_id>/schedule', methods=['POST'])
@brand_or_admin_required
def schedule_post(current_user, post_id):
    """
    Schedule a post and assign it to partners

    POST /api/content-posts/12/schedule
    {
        "scheduled_date": "2026-11-01T15:00:00Z",
        "partner_ids": [5, 6],
        "custom_footer": "...",
        "custom_tags": "..."
    }
    """
    post, error = accessible_post(current_user, post_id, write=True)
    if error:
        return error

    data = request.get_json(silent=True) or {}

    try:
        scheduled_date = parse_datetime(data.get('scheduled_date'))
        if scheduled_date is None and not post.is_evergreen:
            raise ValidationError('scheduled_date is required')
        assignments = distribution_service.schedule_post(
            post, scheduled_date,
            partner_ids=parse_id_list(data.get('partner_ids')),
            custom_footer=data.get('custom_footer'),
            custom_tags=data.get('custom_tags')
        )
    except DistributionError as e:
        return jsonify({'error': e.message}), e.status_code
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    result = post.to_dict()
    result['assignments'] = [a.to_dict() for a in assignments]
    return jsonify(result)


@content_bp.route('/<int:post_id>/reschedule', methods=['POST'])
@brand_or_admin_required
def reschedule_post(current_user, post_id):
    """
    Move a post to another date

    POST /api/content-posts/12/reschedule
    {"scheduled_date": "2026-11-03T15:00:00Z"}
    """
    post, error = accessible_post(current_user, post_id, write=True)
    if error:
        return error

    data = request.get_json(silent=True) or {}

    try:
        post = distribution_service.reschedule_post(post, parse_datetime(data.get('scheduled_date')))
    except DistributionError as e:
        return jsonify({'error': e.message}), e.status_code
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(post.to_dict())


@content_bp.route('/<int:post_id>/publish', methods=['POST'])
@brand_or_admin_required
def publish_post(current_user, post_id):
    """Publish every pending assignment of a post now"""
    post, error = accessible_post(current_user, post_id, write=True)
    if error:
        return error

    if not data_service.get_assignments_for_post(post.id):
        return jsonify({'error': 'Post has no partner assignments'}), 400

    result = distribution_service.publish_post(post)
    return jsonify(result)


@content_bp.route('/evergreen-schedule', methods=['POST'])
@brand_or_admin_required
def schedule_evergreen(current_user):
    """
    Schedule one evergreen rotation

    POST /api/content-posts/evergreen-schedule
    {
        "scheduled_date": "2026-11-01T15:00:00Z",
        "platforms": ["facebook"],
        "partner_ids": [5, 6, 7],
        "brand_id": 3            (admins only)
    }
    """
    data = request.get_json(silent=True) or {}

    brand_id = resolve_brand_id(current_user, data.get('brand_id'))
    if brand_id is None:
        return jsonify({'error': 'brand_id is required'}), 400

    try:
        result = distribution_service.schedule_evergreen(
            brand_id=brand_id,
            creator_id=current_user.id,
            scheduled_date=parse_datetime(data.get('scheduled_date')),
            platforms=data.get('platforms'),
            partner_ids=parse_id_list(data.get('partner_ids'))
        )
    except DistributionError as e:
        return jsonify({'error': e.message}), e.status_code
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({'success': True, **result}), 201
