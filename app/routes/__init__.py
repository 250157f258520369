"""
Ignyt - Routes
API endpoint registration
"""
from flask import Flask


def register_routes(app: Flask):
    """Register all API blueprints"""

    from app.routes.auth import auth_bp
    from app.routes.partners import partners_bp
    from app.routes.social import social_bp
    from app.routes.oauth import oauth_bp
    from app.routes.content import content_bp
    from app.routes.assignments import assignments_bp
    from app.routes.analytics import analytics_bp
    from app.routes.media import media_bp
    from app.routes.invites import invites_bp
    from app.routes.ai import ai_bp
    from app.routes.admin import admin_bp

    # Register with /api prefix
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(partners_bp, url_prefix='/api')
    app.register_blueprint(social_bp, url_prefix='/api/social-accounts')
    app.register_blueprint(oauth_bp, url_prefix='/api/oauth')
    app.register_blueprint(content_bp, url_prefix='/api/content-posts')
    app.register_blueprint(assignments_bp, url_prefix='/api')
    app.register_blueprint(analytics_bp, url_prefix='/api')
    app.register_blueprint(media_bp, url_prefix='/api')
    app.register_blueprint(invites_bp, url_prefix='/api/partner-invites')
    app.register_blueprint(ai_bp, url_prefix='/api')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
