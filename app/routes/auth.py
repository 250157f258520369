"""
Ignyt - Authentication Routes
User login, registration, and token management
"""
from flask import Blueprint, request, jsonify, current_app
from functools import wraps
from typing import Optional
import re
import jwt
from datetime import datetime

from app.models.db_models import DBUser, UserRole, PlanType, ValidationError
from app.services.db_service import DataService
from app.utils import safe_int

auth_bp = Blueprint('auth', __name__)
data_service = DataService()


def validate_password(password):
    """
    Validate password meets security requirements.
    Returns: (is_valid: bool, error_message: str or None)
    """
    if not password:
        return False, "Password is required"
    if len(password) < 8:
        return False, "Password must be at least 8 characters"
    if not re.search(r'[A-Za-z]', password):
        return False, "Password must contain at least one letter"
    if not re.search(r'[0-9]', password):
        return False, "Password must contain at least one number"
    return True, None


def _token_from_request() -> Optional[str]:
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1].strip()
    # Query param for links and redirects
    return request.args.get('token')


def token_required(f):
    """Decorator to require valid JWT token"""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _token_from_request()

        if not token:
            return jsonify({'error': 'Token is missing'}), 401

        try:
            payload = jwt.decode(
                token,
                current_app.config['JWT_SECRET_KEY'],
                algorithms=['HS256']
            )
            current_user = data_service.get_user(payload.get('user_id'))
            if not current_user:
                return jsonify({'error': 'User not found'}), 401
            if not current_user.is_active:
                return jsonify({'error': 'User is deactivated'}), 401
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Token has expired'}), 401
        except jwt.InvalidTokenError:
            return jsonify({'error': 'Invalid token'}), 401

        return f(current_user, *args, **kwargs)

    return decorated


def admin_required(f):
    """Decorator to require admin role"""
    @wraps(f)
    @token_required
    def decorated(current_user, *args, **kwargs):
        if current_user.role != UserRole.ADMIN:
            return jsonify({'error': 'Admin access required'}), 403
        return f(current_user, *args, **kwargs)
    return decorated


def brand_or_admin_required(f):
    """Decorator to require a brand or admin account"""
    @wraps(f)
    @token_required
    def decorated(current_user, *args, **kwargs):
        if current_user.role not in (UserRole.ADMIN, UserRole.BRAND):
            return jsonify({'error': 'Brand or admin access required'}), 403
        return f(current_user, *args, **kwargs)
    return decorated


def resolve_brand_id(current_user: DBUser, requested=None) -> Optional[int]:
    """
    The brand a request acts on.

    Brand users always act on themselves; admins pick one with brand_id
    (None means every brand); partner users have no brand scope.
    """
    if current_user.is_brand:
        return current_user.id
    if current_user.is_admin:
        return safe_int(requested, None)
    return None


def generate_token(user: DBUser) -> str:
    """Generate JWT token for user"""
    payload = {
        'user_id': user.id,
        'username': user.username,
        'role': user.role,
        'exp': datetime.utcnow() + current_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET_KEY'],
        algorithm='HS256'
    )


@auth_bp.route('/register', methods=['POST'])
def register():
    """
    Self-signup for a brand account

    POST /api/auth/register
    {
        "username": "acme",
        "email": "owner@acme.com",
        "name": "Acme Paints",
        "password": "password123",
        "plan_type": "standard"
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

    try:
        user = DBUser(
            username=data['username'],
            email=data['email'],
            name=data['name'],
            password=data['password'],
            role=UserRole.BRAND,
            plan_type=plan_type
        )
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    data_service.save_user(user)

    return jsonify({
        'token': generate_token(user),
        'user': user.to_dict()
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    User login

    POST /api/auth/login
    {
        "username": "acme",          (or "email": "owner@acme.com")
        "password": "password123"
    }
    """
    data = request.get_json(silent=True) or {}

    identifier = data.get('username') or data.get('email')
    if not identifier or not data.get('password'):
        return jsonify({'error': 'Username or email and password required'}), 400

    user = data_service.get_user_by_login(identifier)

    if not user or not user.verify_password(data['password']):
        return jsonify({'error': 'Invalid username or password'}), 401

    if not user.is_active:
        return jsonify({'error': 'Account is deactivated'}), 401

    data_service.update_last_login(user.id)

    return jsonify({
        'token': generate_token(user),
        'user': user.to_dict()
    })


@auth_bp.route('/me', methods=['GET'])
@token_required
def get_current_user(current_user):
    """Get current authenticated user"""
    return jsonify(current_user.to_dict())


@auth_bp.route('/logout', methods=['POST'])
@token_required
def logout(current_user):
    """Tokens are stateless; the client drops its copy"""
    return jsonify({'message': 'Logged out'})


@auth_bp.route('/change-password', methods=['POST'])
@token_required
def change_password(current_user):
    """
    Change password

    POST /api/auth/change-password
    {
        "current_password": "old123",
        "new_password": "new456"
    }
    """
    data = request.get_json(silent=True) or {}

    if not data.get('current_password') or not data.get('new_password'):
        return jsonify({'error': 'Current and new password required'}), 400

    if not current_user.verify_password(data['current_password']):
        return jsonify({'error': 'Current password is incorrect'}), 401

    is_valid, error_msg = validate_password(data['new_password'])
    if not is_valid:
        return jsonify({'error': error_msg}), 400

    current_user.set_password(data['new_password'])
    data_service.save_user(current_user)

    return jsonify({'message': 'Password updated successfully'})
