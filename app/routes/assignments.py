"""
Ignyt - Post Assignment Routes
Distributing posts to partners, per-partner customization, preview and publishing
"""
from flask import Blueprint, request, jsonify
import logging

from app.routes.auth import token_required, brand_or_admin_required
from app.routes.content import accessible_post, data_service, distribution_service
from app.services.distribution_service import DistributionError
from app.utils import parse_id_list

logger = logging.getLogger(__name__)
assignments_bp = Blueprint('assignments', __name__)


def _accessible_assignment(current_user, assignment_id, publish=False):
    """
    Return (assignment, error_response).

    The post's brand (or an admin) may do anything; the partner the
    assignment belongs to may customize and preview it.
    """
    assignment = data_service.get_assignment(assignment_id)
    if not assignment:
        return None, (jsonify({'error': 'Assignment not found'}), 404)

    post = data_service.get_post(assignment.post_id)
    if post and current_user.can_access_brand(post.brand_id):
        return assignment, None

    if not publish and current_user.is_partner:
        partner = data_service.get_partner(assignment.partner_id)
        if partner and current_user.can_access_partner(partner):
            return assignment, None

    return None, (jsonify({'error': 'Access denied'}), 403)


@assignments_bp.route('/content-posts/<int:post_id>/assignments', methods=['POST'])
@brand_or_admin_required
def assign_post(current_user, post_id):
    """
    Assign a post to partners

    POST /api/content-posts/12/assignments
    {
        "partner_ids": [5, 6],
        "custom_footer": "Visit us downtown",
        "custom_tags": "spring, sale"
    }

    Partners that already have the post keep their existing assignment.
    """
    post, error = accessible_post(current_user, post_id, write=True)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    partner_ids = parse_id_list(data.get('partner_ids'))
    if not partner_ids:
        return jsonify({'error': 'partner_ids is required'}), 400

    try:
        assignments = distribution_service.assign_post(
            post, partner_ids, data.get('custom_footer'), data.get('custom_tags')
        )
    except DistributionError as e:
        return jsonify({'error': e.message}), e.status_code

    return jsonify([a.to_dict() for a in assignments]), 201


@assignments_bp.route('/content-posts/<int:post_id>/assignments', methods=['GET'])
@token_required
def list_assignments(current_user, post_id):
    post, error = accessible_post(current_user, post_id)
    if error:
        return error

    assignments = data_service.get_assignments_for_post(post.id)
    if current_user.is_partner:
        own = {p.id for p in data_service.get_partners_for_user(current_user.id)}
        assignments = [a for a in assignments if a.partner_id in own]

    return jsonify([a.to_dict() for a in assignments])


@assignments_bp.route('/post-assignments/<int:assignment_id>', methods=['GET'])
@token_required
def get_assignment(current_user, assignment_id):
    assignment, error = _accessible_assignment(current_user, assignment_id)
    if error:
        return error
    return jsonify(assignment.to_dict())


@assignments_bp.route('/post-assignments/<int:assignment_id>', methods=['PATCH', 'PUT'])
@token_required
def update_assignment(current_user, assignment_id):
    """
    Customize an assignment

    PATCH /api/post-assignments/21
    {
        "custom_footer": "Open Sundays",
        "custom_tags": ["local", "paint"]
    }
    """
    assignment, error = _accessible_assignment(current_user, assignment_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    if 'custom_footer' not in data and 'custom_tags' not in data:
        return jsonify({'error': 'custom_footer or custom_tags is required'}), 400

    assignment = distribution_service.update_customization(assignment, data)
    return jsonify(assignment.to_dict())


@assignments_bp.route('/post-assignments/<int:assignment_id>/preview', methods=['GET'])
@token_required
def preview_assignment(current_user, assignment_id):
    """Text each platform would receive for this assignment"""
    assignment, error = _accessible_assignment(current_user, assignment_id)
    if error:
        return error

    try:
        preview = distribution_service.preview_assignment(assignment)
    except DistributionError as e:
        return jsonify({'error': e.message}), e.status_code

    return jsonify(preview)


@assignments_bp.route('/post-assignments/<int:assignment_id>/publish', methods=['POST'])
@brand_or_admin_required
def publish_assignment(current_user, assignment_id):
    """Publish one assignment to the partner's connected accounts now"""
    assignment, error = _accessible_assignment(current_user, assignment_id, publish=True)
    if error:
        return error

    try:
        result = distribution_service.publish_assignment(assignment)
    except DistributionError as e:
        return jsonify({'error': e.message}), e.status_code

    logger.info(f"Manual publish of assignment {assignment.id} by user {current_user.id}: {result['status']}")
    return jsonify(result)
