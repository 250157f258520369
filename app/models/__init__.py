"""
Ignyt - Data Models
SQLAlchemy ORM models
"""
from app.models.db_models import (
    DBUser as User,
    DBRetailPartner as RetailPartner,
    DBSocialAccount as SocialAccount,
    DBContentPost as ContentPost,
    DBPostAssignment as PostAssignment,
    DBAnalytics as Analytics,
    DBMediaItem as MediaItem,
    DBPartnerInvite as PartnerInvite,
    ValidationError,
    UserRole,
    PlanType,
    Platform,
    PartnerStatus,
    AccountStatus,
    PostStatus,
    AssignmentStatus
)

__all__ = [
    'User',
    'RetailPartner',
    'SocialAccount',
    'ContentPost',
    'PostAssignment',
    'Analytics',
    'MediaItem',
    'PartnerInvite',
    'ValidationError',
    'UserRole',
    'PlanType',
    'Platform',
    'PartnerStatus',
    'AccountStatus',
    'PostStatus',
    'AssignmentStatus'
]
