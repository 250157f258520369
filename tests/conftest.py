"""
Ignyt - Test Fixtures
"""
import pytest
import requests
from unittest.mock import MagicMock

from app import create_app
from app.database import db
from app.models.db_models import (
    DBUser, DBRetailPartner, DBSocialAccount, DBContentPost, UserRole, PartnerStatus
)
from app.routes.auth import generate_token
from app.services.oauth_service import OAuthState


@pytest.fixture
def app(tmp_path):
    app = create_app('testing')
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()

    OAuthState.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role=UserRole.BRAND, name=None, password='password123', **kwargs):
        counter['n'] += 1
        n = counter['n']
        user = DBUser(
            username=kwargs.pop('username', f'{role}{n}'),
            email=kwargs.pop('email', f'{role}{n}@example.com'),
            name=name or f'{role.title()} {n}',
            password=password,
            role=role,
            **kwargs
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        return {'Authorization': f'Bearer {generate_token(user)}'}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, name='Admin')


@pytest.fixture
def brand(make_user):
    return make_user(UserRole.BRAND, name='Acme Paints')


@pytest.fixture
def other_brand(make_user):
    return make_user(UserRole.BRAND, name='Other Brand')


@pytest.fixture
def make_partner(app):
    def _make(brand, name='Main Street Paints', **kwargs):
        partner = DBRetailPartner(
            name=name,
            brand_id=brand.id,
            contact_email=kwargs.pop('contact_email', f"{name.lower().replace(' ', '.')}@example.com"),
            **kwargs
        )
        db.session.add(partner)
        db.session.commit()
        return partner
    return _make


@pytest.fixture
def partner(brand, make_partner):
    return make_partner(brand, footer_template='Visit us at 1 Main St', status=PartnerStatus.ACTIVE)


@pytest.fixture
def partner_user(make_user, partner):
    user = make_user(UserRole.PARTNER, name='Partner Owner')
    partner.user_id = user.id
    db.session.commit()
    return user


@pytest.fixture
def make_account(app):
    def _make(partner, platform='facebook', account_id=None, **kwargs):
        account = DBSocialAccount(
            partner_id=partner.id,
            platform=platform,
            account_id=account_id or f'{platform}-{partner.id}',
            account_name=kwargs.pop('account_name', f'{partner.name} {platform}'),
            access_token=kwargs.pop('access_token', f'token-{platform}'),
            **kwargs
        )
        db.session.add(account)
        db.session.commit()
        return account
    return _make


@pytest.fixture
def make_post(app):
    def _make(brand, title='Spring colours', platforms=None, **kwargs):
        post = DBContentPost(
            brand_id=brand.id,
            creator_id=brand.id,
            title=title,
            description=kwargs.pop('description', f'{title} description'),
            platforms=platforms or ['facebook'],
            **kwargs
        )
        db.session.add(post)
        db.session.commit()
        return post
    return _make


@pytest.fixture
def mock_response():
    """Factory for stand-in requests.Response objects"""
    def _make(json_data=None, status_code=200, text=''):
        response = MagicMock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 400
        response.json.return_value = json_data if json_data is not None else {}
        response.text = text
        if status_code >= 400:
            response.raise_for_status.side_effect = requests.HTTPError(f'{status_code} error')
        return response
    return _make
