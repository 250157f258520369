"""
Ignyt - Services
Business logic and external API integrations
"""
from app.services.ai_service import AIService
from app.services.social_service import SocialService
from app.services.oauth_service import OAuthService
from app.services.email_service import EmailService
from app.services.storage_service import StorageService
from app.services.distribution_service import DistributionService
from app.services.db_service import DataService, create_admin_user

__all__ = [
    'AIService',
    'SocialService',
    'OAuthService',
    'EmailService',
    'StorageService',
    'DistributionService',
    'DataService',
    'create_admin_user'
]
