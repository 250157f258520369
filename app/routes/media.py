"""
Ignyt - Media Library Routes
Brand image and video library, and file uploads
"""
from flask import Blueprint, request, jsonify
import logging

from app.models.db_models import DBMediaItem
from app.routes.auth import brand_or_admin_required, resolve_brand_id
from app.services.db_service import DataService
from app.services.storage_service import get_storage_service, StorageError

logger = logging.getLogger(__name__)
media_bp = Blueprint('media', __name__)
data_service = DataService()


def _accessible_media(current_user, media_id):
    item = data_service.get_media(media_id)
    if not item:
        return None, (jsonify({'error': 'Media item not found'}), 404)
    if not current_user.can_access_brand(item.brand_id):
        return None, (jsonify({'error': 'Access denied'}), 403)
    return item, None


def _brand_or_error(current_user, requested):
    brand_id = resolve_brand_id(current_user, requested)
    if brand_id is None:
        return None, (jsonify({'error': 'brand_id is required'}), 400)
    return brand_id, None


@media_bp.route('/media', methods=['GET'])
@brand_or_admin_required
def list_media(current_user):
    brand_id, error = _brand_or_error(current_user, request.args.get('brand_id'))
    if error:
        return error
    return jsonify([m.to_dict() for m in data_service.get_media_for_brand(brand_id)])


@media_bp.route('/media/by-tags', methods=['GET'])
@brand_or_admin_required
def media_by_tags(current_user):
    """
    Items carrying any of the given tags

    GET /api/media/by-tags?tags=spring,outdoor
    """
    brand_id, error = _brand_or_error(current_user, request.args.get('brand_id'))
    if error:
        return error

    tags = [t.strip() for t in (request.args.get('tags') or '').split(',') if t.strip()]
    if not tags:
        return jsonify({'error': 'tags is required'}), 400

    return jsonify([m.to_dict() for m in data_service.get_media_by_tags(brand_id, tags)])


@media_bp.route('/media/<int:media_id>', methods=['GET'])
@brand_or_admin_required
def get_media(current_user, media_id):
    item, error = _accessible_media(current_user, media_id)
    if error:
        return error
    return jsonify(item.to_dict())


@media_bp.route('/media', methods=['POST'])
@brand_or_admin_required
def create_media(current_user):
    """
    Add an item to the library

    POST /api/media
    {
        "name": "Spring hero",
        "file_url": "/uploads/media-abc.jpg",
        "file_type": "image/jpeg",
        "description": "...",
        "tags": ["spring", "hero"]
    }
    """
    data = request.get_json(silent=True) or {}

    brand_id, error = _brand_or_error(current_user, data.get('brand_id'))
    if error:
        return error

    for field in ['name', 'file_url', 'file_type']:
        if not data.get(field):
            return jsonify({'error': f'{field} is required'}), 400

    item = DBMediaItem(
        brand_id=brand_id,
        name=data['name'],
        file_url=data['file_url'],
        file_type=data['file_type'],
        description=data.get('description'),
        tags=data.get('tags') or []
    )
    data_service.save_media(item)
    return jsonify(item.to_dict()), 201


@media_bp.route('/media/<int:media_id>', methods=['PATCH', 'PUT'])
@brand_or_admin_required
def update_media(current_user, media_id):
    item, error = _accessible_media(current_user, media_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}

    if 'name' in data:
        if not data['name']:
            return jsonify({'error': 'name cannot be empty'}), 400
        item.name = data['name']
    if 'description' in data:
        item.description = data['description']
    if 'tags' in data:
        item.set_tags(data['tags'] or [])

    data_service.save_media(item)
    return jsonify(item.to_dict())


@media_bp.route('/media/<int:media_id>', methods=['DELETE'])
@brand_or_admin_required
def delete_media(current_user, media_id):
    item, error = _accessible_media(current_user, media_id)
    if error:
        return error

    file_url = item.file_url
    data_service.delete_media(item)
    get_storage_service().delete_file(file_url)

    return jsonify({'message': 'Media item deleted'})


@media_bp.route('/upload', methods=['POST'])
@brand_or_admin_required
def upload_file(current_user):
    """
    Upload an image or video

    POST /api/upload  (multipart/form-data, field "media")
    """
    try:
        file_info = get_storage_service().save_upload(request.files.get('media'))
    except StorageError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'message': 'File uploaded successfully',
        'file': file_info
    })
