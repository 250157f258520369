"""
Ignyt - SQLAlchemy Database Models
Brands, retail partners, social accounts, content posts and their distribution
"""
from datetime import datetime
from typing import Optional, List
import json

from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import generate_password_hash, check_password_hash

from app.database import db


class ValidationError(ValueError):
    """Raised when a model is given values outside its allowed domain"""
    pass


def safe_json_loads(value, default=None):
    """Safely parse JSON, returning default if None or invalid"""
    if default is None:
        default = []
    if not value:
        return default
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return default


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================
# Enumerations
# ============================================

class UserRole:
    ADMIN = 'admin'
    BRAND = 'brand'
    PARTNER = 'partner'

    ALL = [ADMIN, BRAND, PARTNER]


class PlanType:
    STANDARD = 'standard'
    PREMIUM = 'premium'

    ALL = [STANDARD, PREMIUM]


class Platform:
    FACEBOOK = 'facebook'
    INSTAGRAM = 'instagram'
    GOOGLE = 'google'

    ALL = [FACEBOOK, INSTAGRAM, GOOGLE]

    @classmethod
    def validate(cls, platforms) -> List[str]:
        """Return a de-duplicated platform list or raise ValidationError"""
        if isinstance(platforms, str):
            platforms = [platforms]
        if not isinstance(platforms, list) or not platforms:
            raise ValidationError('At least one platform is required')
        unknown = [p for p in platforms if p not in cls.ALL]
        if unknown:
            raise ValidationError(f"Unsupported platform(s): {', '.join(map(str, unknown))}")
        seen = []
        for p in platforms:
            if p not in seen:
                seen.append(p)
        return seen


class PartnerStatus:
    PENDING = 'pending'
    ACTIVE = 'active'
    NEEDS_ATTENTION = 'needs_attention'
    INACTIVE = 'inactive'

    ALL = [PENDING, ACTIVE, NEEDS_ATTENTION, INACTIVE]


class AccountStatus:
    ACTIVE = 'active'
    EXPIRED = 'expired'
    REVOKED = 'revoked'

    ALL = [ACTIVE, EXPIRED, REVOKED]


class PostStatus:
    DRAFT = 'draft'
    SCHEDULED = 'scheduled'
    PUBLISHED = 'published'
    AUTOMATED = 'automated'

    ALL = [DRAFT, SCHEDULED, PUBLISHED, AUTOMATED]


class AssignmentStatus:
    PENDING = 'pending'
    PUBLISHED = 'published'
    FAILED = 'failed'

    ALL = [PENDING, PUBLISHED, FAILED]


# ============================================
# User Model
# ============================================

class DBUser(db.Model):
    """Login account. Brand users own partners, posts and media."""
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.BRAND)
    plan_type: Mapped[str] = mapped_column(String(20), default=PlanType.STANDARD)
    parent_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # child brands
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    media_items: Mapped[List['DBMediaItem']] = relationship(
        back_populates='brand', cascade='all, delete-orphan', passive_deletes=True
    )

    def __init__(self, username: str, email: str, name: str, password: str,
                 role: str = UserRole.BRAND, plan_type: str = PlanType.STANDARD,
                 parent_id: Optional[int] = None):
        if role not in UserRole.ALL:
            raise ValidationError(f'Invalid role: {role}')
        if plan_type not in PlanType.ALL:
            raise ValidationError(f'Invalid plan type: {plan_type}')
        self.username = username.strip()
        self.email = email.strip().lower()
        self.name = name
        self.role = role
        self.plan_type = plan_type
        self.parent_id = parent_id
        self.set_password(password)
        self.is_active = True
        self.created_at = datetime.utcnow()

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def verify_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_brand(self) -> bool:
        return self.role == UserRole.BRAND

    @property
    def is_partner(self) -> bool:
        return self.role == UserRole.PARTNER

    def can_access_brand(self, brand_id: int) -> bool:
        if self.is_admin:
            return True
        return self.is_brand and self.id == brand_id

    def can_access_partner(self, partner: 'DBRetailPartner') -> bool:
        """Admins see everything, brands their own partners, partner users their linked rows"""
        if self.is_admin:
            return True
        if self.is_brand:
            return partner.brand_id == self.id
        return partner.user_id is not None and partner.user_id == self.id

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'plan_type': self.plan_type,
            'parent_id': self.parent_id,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'last_login': _iso(self.last_login)
        }


# ============================================
# Retail Partner Model
# ============================================

class DBRetailPartner(db.Model):
    """Retail business that republishes a brand's content on its own accounts"""
    __tablename__ = 'retail_partners'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(30), default=PartnerStatus.PENDING)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    footer_template: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra_data: Mapped[str] = mapped_column('metadata', Text, default='{}')  # JSON: tags, categories
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    connection_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __init__(self, name: str, brand_id: int, contact_email: str, **kwargs):
        self.name = name
        self.brand_id = brand_id
        self.contact_email = contact_email
        self.user_id = kwargs.get('user_id')
        self.contact_phone = kwargs.get('contact_phone')
        self.address = kwargs.get('address')
        self.footer_template = kwargs.get('footer_template')
        self.extra_data = json.dumps(kwargs.get('metadata') or {})
        self.created_at = datetime.utcnow()
        self.connection_date = None
        self.status = PartnerStatus.PENDING
        self.set_status(kwargs.get('status') or PartnerStatus.PENDING)

    def set_status(self, status: str):
        if status not in PartnerStatus.ALL:
            raise ValidationError(f'Invalid partner status: {status}')
        self.status = status
        # First activation marks the partner as connected
        if status == PartnerStatus.ACTIVE and self.connection_date is None:
            self.connection_date = datetime.utcnow()

    def get_metadata(self) -> dict:
        return safe_json_loads(self.extra_data, {})

    def set_metadata(self, metadata: dict):
        self.extra_data = json.dumps(metadata or {})

    @property
    def tags(self) -> List[str]:
        tags = self.get_metadata().get('tags', [])
        return [t for t in tags if isinstance(t, str)] if isinstance(tags, list) else []

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'brand_id': self.brand_id,
            'user_id': self.user_id,
            'status': self.status,
            'contact_email': self.contact_email,
            'contact_phone': self.contact_phone,
            'address': self.address,
            'footer_template': self.footer_template,
            'metadata': self.get_metadata(),
            'created_at': _iso(self.created_at),
            'connection_date': _iso(self.connection_date)
        }


# ============================================
# Social Account Model
# ============================================

class DBSocialAccount(db.Model):
    """A partner's connected page/profile on one platform"""
    __tablename__ = 'social_accounts'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[str] = mapped_column(String(100), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=AccountStatus.ACTIVE)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __init__(self, partner_id: int, platform: str, account_id: str, account_name: str,
                 access_token: str, **kwargs):
        if platform not in Platform.ALL:
            raise ValidationError(f'Unsupported platform: {platform}')
        self.partner_id = partner_id
        self.platform = platform
        self.account_id = str(account_id)
        self.account_name = account_name
        self.access_token = access_token
        self.refresh_token = kwargs.get('refresh_token')
        self.token_expiry = kwargs.get('token_expiry')
        self.status = kwargs.get('status', AccountStatus.ACTIVE)
        self.created_at = datetime.utcnow()

    def is_token_expired(self, now: Optional[datetime] = None) -> bool:
        if self.token_expiry is None:
            return False
        return (now or datetime.utcnow()) >= self.token_expiry

    @property
    def is_usable(self) -> bool:
        return self.status == AccountStatus.ACTIVE and not self.is_token_expired()

    def to_dict(self) -> dict:
        # Tokens never leave the server
        return {
            'id': self.id,
            'partner_id': self.partner_id,
            'platform': self.platform,
            'account_id': self.account_id,
            'account_name': self.account_name,
            'token_expiry': _iso(self.token_expiry),
            'has_refresh_token': bool(self.refresh_token),
            'status': self.status,
            'created_at': _iso(self.created_at)
        }


# ============================================
# Content Post Model
# ============================================

class DBContentPost(db.Model):
    """Brand-authored post distributed to retail partners"""
    __tablename__ = 'content_posts'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    creator_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    platforms: Mapped[str] = mapped_column(Text, default='[]')  # JSON array
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    published_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=PostStatus.DRAFT)
    is_evergreen: Mapped[bool] = mapped_column(Boolean, default=False)
    extra_data: Mapped[str] = mapped_column('metadata', Text, default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, brand_id: int, creator_id: int, title: str, description: str,
                 platforms: List[str], **kwargs):
        self.brand_id = brand_id
        self.creator_id = creator_id
        self.title = title
        self.description = description
        self.set_platforms(platforms)
        self.image_url = kwargs.get('image_url')
        self.scheduled_date = kwargs.get('scheduled_date')
        self.published_date = kwargs.get('published_date')
        self.is_evergreen = bool(kwargs.get('is_evergreen', False))
        self.extra_data = json.dumps(kwargs.get('metadata') or {})
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at
        self.status = PostStatus.DRAFT
        self.set_status(kwargs.get('status') or PostStatus.DRAFT)

    def get_platforms(self) -> List[str]:
        return safe_json_loads(self.platforms, [])

    def set_platforms(self, platforms):
        self.platforms = json.dumps(Platform.validate(platforms))

    def supports_platforms(self, platforms: List[str]) -> bool:
        own = self.get_platforms()
        return all(p in own for p in platforms)

    def set_status(self, status: str):
        """Evergreen posts may be scheduled without a date; everything else needs one"""
        if status not in PostStatus.ALL:
            raise ValidationError(f'Invalid post status: {status}')
        if status == PostStatus.SCHEDULED and not self.is_evergreen and self.scheduled_date is None:
            raise ValidationError('Scheduled posts need a scheduled date unless they are evergreen')
        self.status = status

    def get_metadata(self) -> dict:
        return safe_json_loads(self.extra_data, {})

    def set_metadata(self, metadata: dict):
        self.extra_data = json.dumps(metadata or {})

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'brand_id': self.brand_id,
            'creator_id': self.creator_id,
            'title': self.title,
            'description': self.description,
            'image_url': self.image_url,
            'platforms': self.get_platforms(),
            'scheduled_date': _iso(self.scheduled_date),
            'published_date': _iso(self.published_date),
            'status': self.status,
            'is_evergreen': self.is_evergreen,
            'metadata': self.get_metadata(),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# ============================================
# Post Assignment Model
# ============================================

class DBPostAssignment(db.Model):
    """One post distributed to one partner, with that partner's customization"""
    __tablename__ = 'post_assignments'
    __table_args__ = (
        UniqueConstraint('post_id', 'partner_id', name='uq_post_assignment_post_partner'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    partner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    custom_footer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    custom_tags: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=AssignmentStatus.PENDING)
    published_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    published_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    extra_data: Mapped[str] = mapped_column('metadata', Text, default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __init__(self, post_id: int, partner_id: int, **kwargs):
        self.post_id = post_id
        self.partner_id = partner_id
        self.custom_footer = kwargs.get('custom_footer')
        self.custom_tags = kwargs.get('custom_tags')
        self.status = AssignmentStatus.PENDING
        self.published_url = None
        self.published_date = None
        self.extra_data = json.dumps(kwargs.get('metadata') or {})
        self.created_at = datetime.utcnow()

    def get_metadata(self) -> dict:
        return safe_json_loads(self.extra_data, {})

    def set_metadata(self, metadata: dict):
        self.extra_data = json.dumps(metadata or {})

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'post_id': self.post_id,
            'partner_id': self.partner_id,
            'custom_footer': self.custom_footer,
            'custom_tags': self.custom_tags,
            'status': self.status,
            'published_url': self.published_url,
            'published_date': _iso(self.published_date),
            'metadata': self.get_metadata(),
            'created_at': _iso(self.created_at)
        }


# ============================================
# Analytics Model
# ============================================

class DBAnalytics(db.Model):
    """Engagement numbers for one assignment on one platform, per reporting period"""
    __tablename__ = 'analytics'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    partner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    engagements: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    shares: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    comments: Mapped[int] = mapped_column(Integer, default=0)
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    METRICS = ['impressions', 'engagements', 'clicks', 'shares', 'likes', 'comments']

    def __init__(self, post_id: int, partner_id: int, platform: str, **kwargs):
        self.post_id = post_id
        self.partner_id = partner_id
        self.platform = platform
        for metric in self.METRICS:
            setattr(self, metric, int(kwargs.get(metric) or 0))
        self.date = kwargs.get('date') or datetime.utcnow()

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'post_id': self.post_id,
            'partner_id': self.partner_id,
            'platform': self.platform,
            'date': _iso(self.date)
        }
        for metric in self.METRICS:
            data[metric] = getattr(self, metric) or 0
        return data


# ============================================
# Media Library Model
# ============================================

class DBMediaItem(db.Model):
    """Uploaded image or video in a brand's library"""
    __tablename__ = 'media_library'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(
        Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[str] = mapped_column(Text, default='[]')  # JSON array
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    brand: Mapped['DBUser'] = relationship(back_populates='media_items')

    def __init__(self, brand_id: int, name: str, file_url: str, file_type: str, **kwargs):
        self.brand_id = brand_id
        self.name = name
        self.file_url = file_url
        self.file_type = file_type
        self.description = kwargs.get('description')
        self.set_tags(kwargs.get('tags') or [])
        self.created_at = datetime.utcnow()

    def get_tags(self) -> List[str]:
        return safe_json_loads(self.tags, [])

    def set_tags(self, tags):
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(',')]
        self.tags = json.dumps([t for t in tags if t])

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'brand_id': self.brand_id,
            'name': self.name,
            'file_url': self.file_url,
            'file_type': self.file_type,
            'description': self.description,
            'tags': self.get_tags(),
            'created_at': _iso(self.created_at)
        }


# ============================================
# Partner Invite Model
# ============================================

class DBPartnerInvite(db.Model):
    """Emailed invitation for a retailer to join a brand as a partner"""
    __tablename__ = 'partner_invites'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    brand_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.PARTNER)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    partner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __init__(self, token: str, brand_id: int, email: str, name: str, expires_at: datetime,
                 message: Optional[str] = None):
        self.token = token
        self.brand_id = brand_id
        self.email = email.strip().lower()
        self.name = name
        self.message = message
        self.role = UserRole.PARTNER
        self.expires_at = expires_at
        self.created_at = datetime.utcnow()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    @property
    def is_pending(self) -> bool:
        return self.accepted_at is None and not self.is_expired()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'token': self.token,
            'brand_id': self.brand_id,
            'email': self.email,
            'name': self.name,
            'message': self.message,
            'role': self.role,
            'expires_at': _iso(self.expires_at),
            'accepted_at': _iso(self.accepted_at),
            'partner_id': self.partner_id,
            'created_at': _iso(self.created_at)
        }
