"""
Ignyt - AI Content Routes
"""
from flask import Blueprint, request, jsonify
import logging

from app.models.db_models import Platform
from app.routes.auth import brand_or_admin_required
from app.services.ai_service import get_ai_service, AIServiceError

logger = logging.getLogger(__name__)
ai_bp = Blueprint('ai', __name__)


@ai_bp.route('/generate-content', methods=['POST'])
@brand_or_admin_required
def generate_content(current_user):
    """
    Draft a post title and description with AI

    POST /api/generate-content
    {
        "prompt": "Announce our new exterior paint line",
        "category": "product launch",
        "platforms": ["facebook", "instagram"],      (or "platform": "facebook")
        "content_type": "promotional"                 (or "evergreen")
    }
    """
    data = request.get_json(silent=True) or {}

    prompt = (data.get('prompt') or '').strip()
    if not prompt:
        return jsonify({'error': 'prompt is required'}), 400

    platforms = data.get('platforms') or data.get('platform') or []
    if isinstance(platforms, str):
        platforms = [platforms]
    platforms = [p for p in platforms if p in Platform.ALL]

    ai_service = get_ai_service()
    if not ai_service.is_configured:
        return jsonify({'error': 'AI content generation is not configured'}), 503

    try:
        result = ai_service.generate_post_content(
            prompt,
            category=data.get('category'),
            platforms=platforms,
            content_type=data.get('content_type')
        )
    except AIServiceError as e:
        logger.error(f"AI generation failed for user {current_user.id}: {e}")
        return jsonify({'error': str(e)}), 502

    return jsonify(result)
