"""
Ignyt - Social Content Distribution Platform
Brands author content once; retail partners publish it on their own accounts
"""
from flask import Flask, send_from_directory, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
import os
import logging

__version__ = "1.4.0"

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory pattern"""
    app = Flask(__name__)

    # Fix for running behind a reverse proxy (Render, Heroku, etc.)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    # Load config
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    from app.config import config
    # Use instance instead of class to support @property
    config_instance = config[config_name]()
    app.config.from_object(config_instance)

    # Enable CORS - set CORS_ORIGINS in production
    cors_origins = app.config.get('CORS_ORIGINS', '*')
    if cors_origins == '*' and config_name == 'production':
        logger.warning("SECURITY: CORS_ORIGINS is set to '*' in production! Set specific origins.")
    CORS(app, origins=cors_origins)

    # Rate limiting
    limiter = Limiter(
        app=app,
        key_func=get_remote_address,
        default_limits=["2000 per day", "200 per hour"],
        storage_uri="memory://",
        enabled=app.config.get('RATELIMIT_ENABLED', True)
    )
    app.limiter = limiter

    # Initialize database
    from app.database import init_db
    init_db(app)

    # Register blueprints
    from app.routes import register_routes
    register_routes(app)

    # ==========================================
    # GLOBAL ERROR HANDLERS
    # ==========================================

    json_errors = {
        401: ('Unauthorized', 'Authentication required'),
        403: ('Forbidden', 'Access denied'),
        404: ('Not found', 'The requested resource was not found'),
        405: ('Method not allowed', 'The method is not allowed for this endpoint'),
    }

    def _json_error_handler(code, name, message):
        def handler(error):
            return jsonify({'error': name, 'message': message}), code
        return handler

    for code, (name, message) in json_errors.items():
        app.register_error_handler(code, _json_error_handler(code, name, message))

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({
            'error': 'Bad request',
            'message': getattr(error, 'description', None) or 'Invalid request'
        }), 400

    @app.errorhandler(413)
    def too_large(error):
        limit_mb = app.config.get('MAX_CONTENT_LENGTH', 0) // (1024 * 1024)
        return jsonify({
            'error': 'File too large',
            'message': f'Uploads are limited to {limit_mb} MB'
        }), 413

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal server error: {error}")
        return jsonify({
            'error': 'Internal server error',
            'message': 'An unexpected error occurred'
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Catch-all for unhandled exceptions"""
        if isinstance(error, HTTPException):
            return jsonify({'error': error.name, 'message': error.description}), error.code
        logger.error(f"Unhandled exception: {error}", exc_info=True)
        from app.database import db
        db.session.rollback()
        return jsonify({
            'error': 'Server error',
            'message': 'An unexpected error occurred'
        }), 500

    # Uploaded media
    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    # Health check
    @app.route('/health')
    def health():
        # Basic health check with database ping
        try:
            from app.database import db
            db.session.execute(db.text('SELECT 1'))
            db_status = 'connected'
        except Exception as e:
            db_status = f'error: {str(e)[:50]}'

        return {
            'status': 'healthy' if db_status == 'connected' else 'degraded',
            'version': __version__,
            'database': db_status
        }

    # API info endpoint
    @app.route('/api')
    def api_info():
        return {
            'name': 'Ignyt API',
            'version': __version__,
            'status': 'running',
            'endpoints': {
                'auth': '/api/auth',
                'retail_partners': '/api/retail-partners',
                'social_accounts': '/api/social-accounts',
                'oauth': '/api/oauth',
                'content_posts': '/api/content-posts',
                'post_assignments': '/api/post-assignments',
                'analytics': '/api/analytics',
                'dashboard': '/api/dashboard-stats',
                'media': '/api/media',
                'upload': '/api/upload',
                'invites': '/api/partner-invites',
                'ai': '/api/generate-content',
                'admin': '/api/admin'
            }
        }

    # Initialize background scheduler (only when explicitly enabled)
    if not app.config.get('TESTING') and app.config.get('ENABLE_SCHEDULER'):
        try:
            from app.services.scheduler_service import init_scheduler
            init_scheduler(app)
        except Exception as e:
            app.logger.warning(f"Could not start scheduler: {e}")

    # Check for admin user on startup
    if not app.config.get('TESTING'):
        with app.app_context():
            try:
                from app.models.db_models import DBUser, UserRole
                admin_count = DBUser.query.filter_by(role=UserRole.ADMIN).count()
                if admin_count == 0:
                    app.logger.warning("No admin user exists! Run: python scripts/create_admin.py")
            except Exception as e:
                app.logger.warning(f"Could not check admin users: {e}")

    return app
