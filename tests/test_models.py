"""
Ignyt - Model Tests
"""
import pytest
from datetime import datetime, timedelta

from app.models.db_models import (
    DBUser, DBRetailPartner, DBSocialAccount, DBContentPost, DBPostAssignment,
    DBAnalytics, DBMediaItem, DBPartnerInvite, ValidationError, safe_json_loads,
    UserRole, PartnerStatus, PostStatus, AccountStatus, AssignmentStatus, Platform
)
from app.services.db_service import create_admin_user


class TestUserModel:
    """Test DBUser"""

    def test_create_admin_user(self):
        user = create_admin_user("admin", "Admin@Test.com ", "Test Admin", "password123")

        assert user.email == "admin@test.com"
        assert user.name == "Test Admin"
        assert user.role == UserRole.ADMIN
        assert user.is_admin
        assert user.is_active

    def test_password_verification(self):
        user = create_admin_user("admin", "admin@test.com", "Test Admin", "password123")

        assert user.verify_password("password123")
        assert not user.verify_password("wrongpassword")

    def test_user_to_dict_hides_password(self):
        user = DBUser("acme", "owner@acme.com", "Acme", "password123")
        data = user.to_dict()

        assert data['role'] == UserRole.BRAND
        assert data['plan_type'] == 'standard'
        assert 'password_hash' not in data
        assert 'password' not in data

    def test_invalid_role(self):
        with pytest.raises(ValidationError):
            DBUser("x", "x@example.com", "X", "password123", role='superuser')

    def test_invalid_plan(self):
        with pytest.raises(ValidationError):
            DBUser("x", "x@example.com", "X", "password123", plan_type='gold')

    def test_brand_access(self):
        admin = DBUser("admin", "a@example.com", "Admin", "password123", role=UserRole.ADMIN)
        brand = DBUser("acme", "b@example.com", "Acme", "password123")
        brand.id = 7

        assert admin.can_access_brand(7)
        assert brand.can_access_brand(7)
        assert not brand.can_access_brand(8)

    def test_partner_access(self):
        brand = DBUser("acme", "b@example.com", "Acme", "password123")
        brand.id = 7
        partner_user = DBUser("shop", "s@example.com", "Shop", "password123", role=UserRole.PARTNER)
        partner_user.id = 9

        partner = DBRetailPartner("Shop", brand_id=7, contact_email="s@example.com", user_id=9)
        other = DBRetailPartner("Other", brand_id=8, contact_email="o@example.com")

        assert brand.can_access_partner(partner)
        assert not brand.can_access_partner(other)
        assert partner_user.can_access_partner(partner)
        assert not partner_user.can_access_partner(other)


class TestRetailPartnerModel:
    """Test DBRetailPartner"""

    def test_defaults(self):
        partner = DBRetailPartner("Shop", brand_id=1, contact_email="shop@example.com")

        assert partner.status == PartnerStatus.PENDING
        assert partner.connection_date is None
        assert partner.get_metadata() == {}

    def test_first_activation_sets_connection_date(self):
        partner = DBRetailPartner("Shop", brand_id=1, contact_email="shop@example.com")
        partner.set_status(PartnerStatus.ACTIVE)
        first = partner.connection_date

        assert first is not None

        partner.set_status(PartnerStatus.NEEDS_ATTENTION)
        partner.set_status(PartnerStatus.ACTIVE)
        assert partner.connection_date == first

    def test_invalid_status(self):
        partner = DBRetailPartner("Shop", brand_id=1, contact_email="shop@example.com")
        with pytest.raises(ValidationError):
            partner.set_status('archived')

    def test_tags_from_metadata(self):
        partner = DBRetailPartner(
            "Shop", brand_id=1, contact_email="shop@example.com",
            metadata={'tags': ['Premium', 3, 'Urban']}
        )
        assert partner.tags == ['Premium', 'Urban']


class TestSocialAccountModel:
    """Test DBSocialAccount"""

    def test_unsupported_platform(self):
        with pytest.raises(ValidationError):
            DBSocialAccount(1, 'tiktok', '123', 'Shop', 'token')

    def test_token_expiry(self):
        now = datetime(2024, 5, 1, 12, 0)
        account = DBSocialAccount(1, 'facebook', '123', 'Shop', 'token', token_expiry=now)

        assert account.is_token_expired(now)
        assert not account.is_token_expired(now - timedelta(seconds=1))

    def test_no_expiry_never_expires(self):
        account = DBSocialAccount(1, 'google', 'loc', 'Shop', 'token')
        assert not account.is_token_expired()
        assert account.is_usable

    def test_revoked_is_not_usable(self):
        account = DBSocialAccount(1, 'facebook', '123', 'Shop', 'token', status=AccountStatus.REVOKED)
        assert not account.is_usable

    def test_to_dict_hides_tokens(self):
        account = DBSocialAccount(1, 'google', 'loc', 'Shop', 'secret', refresh_token='refresh')
        data = account.to_dict()

        assert 'access_token' not in data
        assert 'refresh_token' not in data
        assert data['has_refresh_token'] is True


class TestContentPostModel:
    """Test DBContentPost"""

    def test_platforms_deduplicated(self):
        post = DBContentPost(1, 1, "Title", "Body", ['facebook', 'instagram', 'facebook'])
        assert post.get_platforms() == ['facebook', 'instagram']

    def test_platforms_required(self):
        with pytest.raises(ValidationError):
            DBContentPost(1, 1, "Title", "Body", [])

    def test_unknown_platform(self):
        with pytest.raises(ValidationError):
            DBContentPost(1, 1, "Title", "Body", ['myspace'])

    def test_scheduled_needs_date(self):
        with pytest.raises(ValidationError):
            DBContentPost(1, 1, "Title", "Body", ['facebook'], status=PostStatus.SCHEDULED)

    def test_evergreen_scheduled_without_date(self):
        post = DBContentPost(1, 1, "Title", "Body", ['facebook'], is_evergreen=True,
                             status=PostStatus.SCHEDULED)
        assert post.status == PostStatus.SCHEDULED
        assert post.scheduled_date is None

    def test_supports_platforms(self):
        post = DBContentPost(1, 1, "Title", "Body", ['facebook', 'instagram'])
        assert post.supports_platforms(['facebook'])
        assert not post.supports_platforms(['facebook', 'google'])


class TestAssignmentModel:
    """Test DBPostAssignment and DBAnalytics"""

    def test_assignment_defaults(self):
        assignment = DBPostAssignment(1, 2, custom_tags='spring, sale')

        assert assignment.status == AssignmentStatus.PENDING
        assert assignment.published_url is None
        assert assignment.to_dict()['custom_tags'] == 'spring, sale'

    def test_analytics_metrics_default_to_zero(self):
        row = DBAnalytics(1, 2, Platform.FACEBOOK, impressions='40', likes=None)
        data = row.to_dict()

        assert data['impressions'] == 40
        assert data['likes'] == 0
        assert data['comments'] == 0


class TestMediaAndInviteModels:
    """Test DBMediaItem and DBPartnerInvite"""

    def test_media_tags_from_string(self):
        item = DBMediaItem(1, "Hero", "/uploads/hero.png", "image/png", tags="spring, , hero")
        assert item.get_tags() == ['spring', 'hero']

    def test_invite_expiry(self):
        now = datetime(2024, 5, 1)
        invite = DBPartnerInvite("tok", 1, "Shop@Example.com", "Shop", expires_at=now + timedelta(days=7))

        assert invite.email == "shop@example.com"
        assert invite.role == UserRole.PARTNER
        assert not invite.is_expired(now)
        assert invite.is_expired(now + timedelta(days=7))

    def test_safe_json_loads(self):
        assert safe_json_loads(None) == []
        assert safe_json_loads('not json', {}) == {}
        assert safe_json_loads('{"a": 1}') == {'a': 1}
