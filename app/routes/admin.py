"""
Ignyt - Admin Routes
Brand account management, platform statistics and scheduler control
"""
from flask import Blueprint, request, jsonify, current_app
import logging

from app.models.db_models import (
    DBUser, UserRole, PlanType, PartnerStatus, PostStatus, AccountStatus
)
from app.routes.auth import admin_required, validate_password
from app.services.db_service import DataService
from app.services.scheduler_service import (
    get_scheduler_status, run_job_now, publish_due_posts, check_token_expiry
)
from app.utils import safe_bool

logger = logging.getLogger(__name__)
admin_bp = Blueprint('admin', __name__)
data_service = DataService()


def _brand_summary(brand: DBUser) -> dict:
    result = brand.to_dict()
    result['partner_count'] = len(data_service.get_partners(brand.id))
    result['post_count'] = len(data_service.get_posts(brand.id))
    return result


@admin_bp.route('/brands', methods=['GET'])
@admin_required
def list_brands(current_user):
    """Every brand with partner and post counts"""
    return jsonify([_brand_summary(b) for b in data_service.get_brands()])


@admin_bp.route('/brands', methods=['POST'])
@admin_required
def create_brand(current_user):
    """
    Create a brand account

    POST /api/admin/brands
    {
        "username": "acme",
        "email": "owner@acme.com",
        "name": "Acme Paints",
        "password": "password123",
        "plan_type": "premium",
        "parent_id": null
    }
    """
    data = request.get_json(silent=True) or {}

    for field in ['username', 'email', 'name', 'password']:
        if not data.get(field):
            return jsonify({'error': f'{field} is required'}), 400

    is_valid, error_msg = validate_password(data['password'])
    if not is_valid:
        return jsonify({'error': error_msg}), 400

    plan_type = data.get('plan_type') or PlanType.STANDARD
    if plan_type not in PlanType.ALL:
        return jsonify({'error': f'plan_type must be one of: {", ".join(PlanType.ALL)}'}), 400

    if data_service.get_user_by_username(data['username']):
        return jsonify({'error': 'Username already exists'}), 400
    if data_service.get_user_by_email(data['email']):
        return jsonify({'error': 'Email already registered'}), 400

    brand = DBUser(
        username=data['username'],
        email=data['email'],
        name=data['name'],
        password=data['password'],
        role=UserRole.BRAND,
        plan_type=plan_type,
        parent_id=data.get('parent_id')
    )
    data_service.save_user(brand)

    logger.info(f"Admin {current_user.id} created brand {brand.id}")
    return jsonify(_brand_summary(brand)), 201


@admin_bp.route('/brands/<int:brand_id>', methods=['PATCH', 'PUT'])
@admin_required
def update_brand(current_user, brand_id):
    brand = data_service.get_user(brand_id)
    if not brand or brand.role != UserRole.BRAND:
        return jsonify({'error': 'Brand not found'}), 404

    data = request.get_json(silent=True) or {}

    if 'name' in data:
        if not data['name']:
            return jsonify({'error': 'name cannot be empty'}), 400
        brand.name = data['name']

    if 'email' in data:
        email = (data['email'] or '').strip().lower()
        if not email:
            return jsonify({'error': 'email cannot be empty'}), 400
        existing = data_service.get_user_by_email(email)
        if existing and existing.id != brand.id:
            return jsonify({'error': 'Email already registered'}), 400
        brand.email = email

    if 'plan_type' in data:
        if data['plan_type'] not in PlanType.ALL:
            return jsonify({'error': f'plan_type must be one of: {", ".join(PlanType.ALL)}'}), 400
        brand.plan_type = data['plan_type']

    if 'is_active' in data:
        brand.is_active = safe_bool(data['is_active'])

    data_service.save_user(brand)
    return jsonify(_brand_summary(brand))


@admin_bp.route('/stats', methods=['GET'])
@admin_required
def platform_stats(current_user):
    """Counts across every brand"""
    partners = data_service.get_partners()
    posts = data_service.get_posts()

    partner_stats = {status: 0 for status in PartnerStatus.ALL}
    for partner in partners:
        partner_stats[partner.status] = partner_stats.get(partner.status, 0) + 1

    post_stats = {status: 0 for status in PostStatus.ALL}
    for post in posts:
        post_stats[post.status] = post_stats.get(post.status, 0) + 1

    accounts = []
    for brand in data_service.get_brands():
        accounts.extend(data_service.get_accounts_for_brand(brand.id))

    return jsonify({
        'users': data_service.count_users_by_role(),
        'partners': {'total': len(partners), 'by_status': partner_stats},
        'posts': {'total': len(posts), 'by_status': post_stats},
        'social_accounts': {
            'total': len(accounts),
            'active': len([a for a in accounts if a.status == AccountStatus.ACTIVE]),
            'expired': len([a for a in accounts if a.status == AccountStatus.EXPIRED])
        }
    })


# ==========================================
# SCHEDULER
# ==========================================

@admin_bp.route('/scheduler', methods=['GET'])
@admin_required
def scheduler_status(current_user):
    return jsonify(get_scheduler_status())


@admin_bp.route('/scheduler/run/<job_id>', methods=['POST'])
@admin_required
def trigger_job(current_user, job_id):
    """
    Run a background job now

    POST /api/admin/scheduler/run/publish_due_posts

    Without a running scheduler the job runs inline and its result is returned.
    """
    jobs = {
        'publish_due_posts': publish_due_posts,
        'check_token_expiry': check_token_expiry
    }
    if job_id not in jobs:
        return jsonify({'error': f'Job {job_id} not found'}), 404

    result = run_job_now(job_id)
    if result.get('success'):
        return jsonify(result)

    result = jobs[job_id](current_app._get_current_object())
    if result.get('error'):
        return jsonify(result), 500
    return jsonify({'success': True, 'result': result})
