"""
Ignyt - Configuration
Environment-based configuration for different deployment stages
"""
import os
from datetime import timedelta


def _normalize_db_url(db_url: str) -> str:
    """Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql+psycopg://"""
    if db_url.startswith('postgres://'):
        return db_url.replace('postgres://', 'postgresql+psycopg://', 1)
    if db_url.startswith('postgresql://'):
        return db_url.replace('postgresql://', 'postgresql+psycopg://', 1)
    return db_url


class BaseConfig:
    """Base configuration"""

    # Flask - Secret key (required in production)
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Warn if using dev key in production-like environment
    _is_production = os.environ.get('RENDER') or os.environ.get('FLASK_ENV') == 'production'
    if SECRET_KEY == 'dev-secret-key-change-in-production' and _is_production:
        import warnings
        warnings.warn("SECRET_KEY is using default dev value in production! Set SECRET_KEY env var.")

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Get database URI, falling back to SQLite for local development"""
        db_url = os.environ.get('DATABASE_URL', '')
        if db_url:
            return _normalize_db_url(db_url)
        return 'sqlite:///ignyt.db'

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Public URL of the app (OAuth callbacks, invite links)
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000')

    # OpenAI
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
    DEFAULT_AI_MODEL = os.environ.get('DEFAULT_AI_MODEL', 'gpt-4o')

    # Facebook / Instagram (Meta)
    FACEBOOK_APP_ID = os.environ.get('FACEBOOK_APP_ID', '')
    FACEBOOK_APP_SECRET = os.environ.get('FACEBOOK_APP_SECRET', '')

    # Google Business Profile
    GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID', '')
    GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_CLIENT_SECRET', '')

    # Email
    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
    FROM_EMAIL = os.environ.get('FROM_EMAIL', 'noreply@ignyt.app')
    FROM_NAME = os.environ.get('FROM_NAME', 'Ignyt')
    SMTP_HOST = os.environ.get('SMTP_HOST', 'smtp.gmail.com')
    SMTP_PORT = int(os.environ.get('SMTP_PORT', '587'))
    SMTP_USER = os.environ.get('SMTP_USER', '')
    SMTP_PASS = os.environ.get('SMTP_PASS', '')

    # Uploads - 20MB limit for images and video
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads'))
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_UPLOAD_MB', '20')) * 1024 * 1024

    # Partner invites
    INVITE_EXPIRY_DAYS = int(os.environ.get('INVITE_EXPIRY_DAYS', '7'))

    # Rate limiting
    RATELIMIT_ENABLED = os.environ.get('RATE_LIMIT_ENABLED', 'true').lower() == 'true'

    # Background jobs (publishing, token checks)
    ENABLE_SCHEDULER = os.environ.get('ENABLE_SCHEDULER') == '1'

    # JWT Auth
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get('JWT_EXPIRES_HOURS', '24')))


class DevelopmentConfig(BaseConfig):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(BaseConfig):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Production always runs against DATABASE_URL"""
        return _normalize_db_url(os.environ.get('DATABASE_URL', ''))


class TestingConfig(BaseConfig):
    """Testing configuration"""
    DEBUG = True
    TESTING = True

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Use TEST_DATABASE_URL if set, otherwise in-memory SQLite"""
        db_url = os.environ.get('TEST_DATABASE_URL', '')
        if db_url:
            return _normalize_db_url(db_url)
        return 'sqlite:///:memory:'

    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    ENABLE_SCHEDULER = False

    # Use test API keys
    OPENAI_API_KEY = 'test-key'
    FACEBOOK_APP_ID = 'test-app-id'
    FACEBOOK_APP_SECRET = 'test-app-secret'
    GOOGLE_CLIENT_ID = 'test-google-client'
    GOOGLE_CLIENT_SECRET = 'test-google-secret'
    SENDGRID_API_KEY = ''
    SMTP_USER = ''
    SMTP_PASS = ''
    APP_URL = 'http://localhost:5000'
    JWT_SECRET_KEY = 'test-jwt-secret'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get current config object"""
    env = os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])
