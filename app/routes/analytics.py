"""
Ignyt - Analytics Routes
Engagement reporting per post, partner and platform, and the brand dashboard
"""
from flask import Blueprint, request, jsonify
import logging

from app.models.db_models import DBAnalytics
from app.routes.auth import brand_or_admin_required, resolve_brand_id
from app.services.db_service import DataService
from app.utils import safe_int, parse_datetime

logger = logging.getLogger(__name__)
analytics_bp = Blueprint('analytics', __name__)
data_service = DataService()


@analytics_bp.route('/analytics', methods=['GET'])
@brand_or_admin_required
def list_analytics(current_user):
    """
    Analytics rows with totals

    GET /api/analytics?post_id=12&partner_id=5&platform=facebook&start=2026-10-01&end=2026-11-01
    """
    try:
        start = parse_datetime(request.args.get('start'))
        end = parse_datetime(request.args.get('end'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    rows = data_service.get_analytics(
        brand_id=resolve_brand_id(current_user, request.args.get('brand_id')),
        post_id=safe_int(request.args.get('post_id'), None),
        partner_id=safe_int(request.args.get('partner_id'), None),
        platform=request.args.get('platform'),
        start=start,
        end=end
    )

    totals = {metric: sum(getattr(r, metric) or 0 for r in rows) for metric in DBAnalytics.METRICS}

    return jsonify({
        'analytics': [r.to_dict() for r in rows],
        'totals': totals,
        'count': len(rows)
    })


@analytics_bp.route('/analytics', methods=['POST'])
@brand_or_admin_required
def record_analytics(current_user):
    """
    Record one reporting period for an assignment on one platform

    POST /api/analytics
    {
        "post_id": 12,
        "partner_id": 5,
        "platform": "facebook",
        "impressions": 1200,
        "engagements": 85,
        "clicks": 30,
        "shares": 4,
        "likes": 70,
        "comments": 11,
        "date": "2026-10-15"
    }
    """
    data = request.get_json(silent=True) or {}

    post_id = safe_int(data.get('post_id'), None)
    partner_id = safe_int(data.get('partner_id'), None)
    platform = data.get('platform')

    if post_id is None or partner_id is None or not platform:
        return jsonify({'error': 'post_id, partner_id and platform are required'}), 400

    post = data_service.get_post(post_id)
    if not post:
        return jsonify({'error': 'Post not found'}), 404
    if not current_user.can_access_brand(post.brand_id):
        return jsonify({'error': 'Access denied'}), 403

    if not data_service.get_assignment_for(post_id, partner_id):
        return jsonify({'error': 'Post is not assigned to this partner'}), 400

    if platform not in post.get_platforms():
        return jsonify({'error': f'Post is not published on {platform}'}), 400

    metrics = {}
    for metric in DBAnalytics.METRICS:
        value = safe_int(data.get(metric), 0)
        if value < 0:
            return jsonify({'error': f'{metric} cannot be negative'}), 400
        metrics[metric] = value

    try:
        date = parse_datetime(data.get('date'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    row = DBAnalytics(post_id=post_id, partner_id=partner_id, platform=platform, date=date, **metrics)
    data_service.save_analytics(row)

    return jsonify(row.to_dict()), 201


@analytics_bp.route('/dashboard-stats', methods=['GET'])
@brand_or_admin_required
def dashboard_stats(current_user):
    """
    Brand dashboard

    GET /api/dashboard-stats
    GET /api/dashboard-stats?brand_id=3      (admins)
    """
    brand_id = resolve_brand_id(current_user, request.args.get('brand_id'))
    if brand_id is None:
        return jsonify({'error': 'brand_id is required'}), 400

    return jsonify(data_service.get_dashboard_stats(brand_id))
