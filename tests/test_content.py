"""
Ignyt - Content Post Tests
"""
import random
from datetime import datetime, timedelta

import pytest

from app.database import db
from app.models.db_models import DBPostAssignment, PostStatus
from app.services.db_service import DataService
from app.services.distribution_service import DistributionService, DistributionError


class TestCreatePost:
    """Test POST /api/content-posts"""

    def test_create_draft(self, client, brand, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'Spring colours',
            'description': 'Fresh palettes',
            'platforms': ['facebook', 'instagram']
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body['status'] == PostStatus.DRAFT
        assert body['brand_id'] == brand.id
        assert body['creator_id'] == brand.id
        assert body['assignments'] == []

    def test_create_with_assignments(self, client, brand, partner, make_partner, auth_headers):
        second = make_partner(brand, name='Second Shop')

        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'Spring colours',
            'description': 'Fresh palettes',
            'platforms': ['facebook'],
            'scheduled_date': '2030-01-01T15:00:00Z',
            'status': 'scheduled',
            'partner_ids': [partner.id, second.id, partner.id],
            'custom_tags': 'spring, paint'
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body['status'] == PostStatus.SCHEDULED
        assert body['scheduled_date'] == '2030-01-01T15:00:00'
        assert [a['partner_id'] for a in body['assignments']] == [partner.id, second.id]
        assert body['assignments'][0]['custom_tags'] == 'spring, paint'

    def test_scheduled_without_date(self, client, brand, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'T', 'description': 'D', 'platforms': ['facebook'], 'status': 'scheduled'
        })
        assert response.status_code == 400

    def test_evergreen_scheduled_without_date(self, client, brand, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'T', 'description': 'D', 'platforms': ['facebook'],
            'status': 'scheduled', 'is_evergreen': True
        })
        assert response.status_code == 201

    def test_unknown_platform(self, client, brand, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'T', 'description': 'D', 'platforms': ['myspace']
        })
        assert response.status_code == 400

    def test_bad_date(self, client, brand, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'T', 'description': 'D', 'platforms': ['facebook'], 'scheduled_date': 'next tuesday'
        })
        assert response.status_code == 400

    def test_cannot_create_published(self, client, brand, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'T', 'description': 'D', 'platforms': ['facebook'], 'status': PostStatus.PUBLISHED
        })

        assert response.status_code == 400
        assert DataService().get_posts(brand.id) == []

    def test_missing_title(self, client, brand, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'description': 'D', 'platforms': ['facebook']
        })
        assert response.status_code == 400

    def test_foreign_partner_writes_nothing(self, client, brand, other_brand, make_partner, auth_headers):
        foreign = make_partner(other_brand, name='Foreign Shop')

        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'T', 'description': 'D', 'platforms': ['facebook'], 'partner_ids': [foreign.id]
        })

        assert response.status_code == 403
        assert DataService().get_posts(brand.id) == []

    def test_missing_partner(self, client, brand, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(brand), json={
            'title': 'T', 'description': 'D', 'platforms': ['facebook'], 'partner_ids': [999]
        })
        assert response.status_code == 404

    def test_admin_needs_brand(self, client, admin, auth_headers):
        response = client.post('/api/content-posts', headers=auth_headers(admin), json={
            'title': 'T', 'description': 'D', 'platforms': ['facebook']
        })
        assert response.status_code == 400


class TestReadPosts:
    """Test listing and reading posts"""

    def test_list_filters(self, client, brand, other_brand, make_post, auth_headers):
        make_post(brand, title='Draft')
        make_post(brand, title='Evergreen', is_evergreen=True)
        make_post(other_brand, title='Not mine')

        everything = client.get('/api/content-posts', headers=auth_headers(brand)).get_json()
        evergreen = client.get('/api/content-posts?evergreen=true', headers=auth_headers(brand)).get_json()

        assert sorted(p['title'] for p in everything) == ['Draft', 'Evergreen']
        assert [p['title'] for p in evergreen] == ['Evergreen']

    def test_get_with_assignments(self, client, brand, partner, make_post, auth_headers):
        post = make_post(brand)
        db.session.add(DBPostAssignment(post.id, partner.id))
        db.session.commit()

        body = client.get(f'/api/content-posts/{post.id}', headers=auth_headers(brand)).get_json()

        assert body['assignments'][0]['partner_name'] == partner.name

    def test_other_brand_forbidden(self, client, brand, other_brand, make_post, auth_headers):
        post = make_post(brand)
        response = client.get(f'/api/content-posts/{post.id}', headers=auth_headers(other_brand))
        assert response.status_code == 403

    def test_partner_reads_assigned_post(self, client, brand, partner, partner_user, make_post, auth_headers):
        assigned = make_post(brand, title='Assigned')
        unassigned = make_post(brand, title='Unassigned')
        db.session.add(DBPostAssignment(assigned.id, partner.id))
        db.session.commit()

        headers = auth_headers(partner_user)
        assert client.get(f'/api/content-posts/{assigned.id}', headers=headers).status_code == 200
        assert client.get(f'/api/content-posts/{unassigned.id}', headers=headers).status_code == 403

    def test_calendar(self, client, brand, make_post, auth_headers):
        make_post(brand, title='Draft')
        make_post(brand, title='November', scheduled_date=datetime(2030, 11, 5), status='scheduled')
        make_post(brand, title='December', scheduled_date=datetime(2030, 12, 5), status='scheduled')

        everything = client.get('/api/content-posts/calendar', headers=auth_headers(brand)).get_json()
        november = client.get(
            '/api/content-posts/calendar?start=2030-11-01&end=2030-11-30', headers=auth_headers(brand)
        ).get_json()

        assert [p['title'] for p in everything] == ['November', 'December']
        assert [p['title'] for p in november] == ['November']
        assert november[0]['assignments'] == []

    def test_calendar_range_applies_per_date(self, client, brand, make_post, auth_headers):
        make_post(brand, title='Jan', status='published',
                  scheduled_date=datetime(2030, 1, 1), published_date=datetime(2030, 3, 1))
        make_post(brand, title='Feb', status='published',
                  scheduled_date=datetime(2030, 1, 15), published_date=datetime(2030, 2, 10))
        make_post(brand, title='Late Feb', status='scheduled', scheduled_date=datetime(2030, 2, 20))

        body = client.get(
            '/api/content-posts/calendar?start=2030-02-01&end=2030-02-28', headers=auth_headers(brand)
        ).get_json()
        from_march = client.get('/api/content-posts/calendar?start=2030-03-01', headers=auth_headers(brand)).get_json()

        assert [p['title'] for p in body] == ['Feb', 'Late Feb']
        assert [p['title'] for p in from_march] == ['Jan']

    def test_calendar_admin_needs_brand(self, client, admin, auth_headers):
        assert client.get('/api/content-posts/calendar', headers=auth_headers(admin)).status_code == 400


class TestUpdatePost:
    """Test editing and deleting posts"""

    def test_update(self, client, brand, make_post, auth_headers):
        post = make_post(brand)

        response = client.patch(f'/api/content-posts/{post.id}', headers=auth_headers(brand), json={
            'title': 'New title', 'platforms': ['google']
        })

        assert response.status_code == 200
        assert response.get_json()['title'] == 'New title'
        assert response.get_json()['platforms'] == ['google']

    def test_clearing_date_of_scheduled_post(self, client, brand, make_post, auth_headers):
        post = make_post(brand, scheduled_date=datetime(2030, 1, 1), status='scheduled')

        response = client.patch(f'/api/content-posts/{post.id}', headers=auth_headers(brand), json={
            'scheduled_date': None
        })

        assert response.status_code == 400
        assert DataService().get_post(post.id).scheduled_date == datetime(2030, 1, 1)

    def test_cannot_mark_published(self, client, brand, make_post, auth_headers):
        post = make_post(brand)

        response = client.patch(f'/api/content-posts/{post.id}', headers=auth_headers(brand), json={
            'status': PostStatus.PUBLISHED, 'title': 'Changed'
        })

        assert response.status_code == 400
        stored = DataService().get_post(post.id)
        assert stored.status == PostStatus.DRAFT
        assert stored.published_date is None
        assert stored.title == 'Spring colours'

    def test_published_post_keeps_status_on_edit(self, client, brand, make_post, auth_headers):
        post = make_post(brand, status=PostStatus.PUBLISHED, published_date=datetime(2030, 1, 1))

        response = client.patch(f'/api/content-posts/{post.id}', headers=auth_headers(brand), json={
            'status': PostStatus.PUBLISHED, 'title': 'Changed'
        })

        assert response.status_code == 200
        assert response.get_json()['status'] == PostStatus.PUBLISHED

    def test_empty_title(self, client, brand, make_post, auth_headers):
        post = make_post(brand)
        response = client.put(f'/api/content-posts/{post.id}', headers=auth_headers(brand), json={'title': ''})
        assert response.status_code == 400

    def test_delete_removes_assignments(self, client, brand, partner, make_post, auth_headers):
        post = make_post(brand)
        post_id = post.id
        db.session.add(DBPostAssignment(post_id, partner.id))
        db.session.commit()

        response = client.delete(f'/api/content-posts/{post_id}', headers=auth_headers(brand))

        assert response.status_code == 200
        assert DataService().get_post(post_id) is None
        assert DataService().get_assignments_for_post(post_id) == []

    def test_partner_cannot_delete(self, client, brand, partner, partner_user, make_post, auth_headers):
        post = make_post(brand)
        response = client.delete(f'/api/content-posts/{post.id}', headers=auth_headers(partner_user))
        assert response.status_code == 403


class TestScheduling:
    """Test schedule and reschedule"""

    def test_schedule(self, client, brand, partner, make_post, auth_headers):
        post = make_post(brand)

        response = client.post(f'/api/content-posts/{post.id}/schedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-03-01T10:00:00+02:00',
            'partner_ids': [partner.id],
            'custom_footer': 'Only this week'
        })

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == PostStatus.SCHEDULED
        assert body['scheduled_date'] == '2030-03-01T08:00:00'
        assert body['assignments'][0]['custom_footer'] == 'Only this week'

    def test_schedule_twice_keeps_one_assignment(self, client, brand, partner, make_post, auth_headers):
        post = make_post(brand)
        payload = {'scheduled_date': '2030-03-01T10:00:00Z', 'partner_ids': [partner.id]}

        client.post(f'/api/content-posts/{post.id}/schedule', headers=auth_headers(brand), json=payload)
        client.post(f'/api/content-posts/{post.id}/schedule', headers=auth_headers(brand), json=payload)

        assert len(DataService().get_assignments_for_post(post.id)) == 1

    def test_schedule_needs_date(self, client, brand, make_post, auth_headers):
        post = make_post(brand)
        response = client.post(f'/api/content-posts/{post.id}/schedule', headers=auth_headers(brand), json={})
        assert response.status_code == 400

    def test_schedule_published(self, client, brand, make_post, auth_headers):
        post = make_post(brand, status='published')
        response = client.post(f'/api/content-posts/{post.id}/schedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-03-01T10:00:00Z'
        })
        assert response.status_code == 409

    def test_reschedule(self, client, brand, make_post, auth_headers):
        post = make_post(brand, scheduled_date=datetime(2030, 1, 1), status='scheduled')

        response = client.post(f'/api/content-posts/{post.id}/reschedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-01-05T09:30:00'
        })

        assert response.status_code == 200
        assert response.get_json()['scheduled_date'] == '2030-01-05T09:30:00'

    def test_reschedule_draft_becomes_scheduled(self, client, brand, make_post, auth_headers):
        post = make_post(brand)
        body = client.post(f'/api/content-posts/{post.id}/reschedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-01-05T09:30:00'
        }).get_json()
        assert body['status'] == PostStatus.SCHEDULED

    def test_reschedule_needs_date(self, client, brand, make_post, auth_headers):
        post = make_post(brand)
        response = client.post(f'/api/content-posts/{post.id}/reschedule', headers=auth_headers(brand), json={})
        assert response.status_code == 400

    def test_publish_without_assignments(self, client, brand, make_post, auth_headers):
        post = make_post(brand)
        response = client.post(f'/api/content-posts/{post.id}/publish', headers=auth_headers(brand))
        assert response.status_code == 400


class TestEvergreenRotation:
    """Test evergreen scheduling"""

    @pytest.fixture
    def service(self, app):
        return DistributionService()

    def test_endpoint(self, client, brand, partner, make_post, auth_headers):
        evergreen = make_post(brand, title='Always relevant', is_evergreen=True, image_url='https://cdn/x.jpg')

        response = client.post('/api/content-posts/evergreen-schedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-02-01T12:00:00Z',
            'platforms': ['facebook'],
            'partner_ids': [partner.id]
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body['success'] is True
        assert body['partners'] == 1
        assert body['parent_post']['status'] == PostStatus.SCHEDULED
        assert body['parent_post']['metadata']['is_scheduled_evergreen'] is True
        assert body['assignments'][0]['selected_post']['id'] == evergreen.id
        assert body['assignments'][0]['assignment']['metadata']['original_image_url'] == 'https://cdn/x.jpg'

    def test_rotation_parent_hidden_from_library(self, client, brand, partner, make_post, auth_headers):
        make_post(brand, title='Always relevant', is_evergreen=True)
        client.post('/api/content-posts/evergreen-schedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-02-01T12:00:00Z', 'platforms': ['facebook'], 'partner_ids': [partner.id]
        })

        body = client.get('/api/content-posts/evergreen', headers=auth_headers(brand)).get_json()

        assert [p['title'] for p in body] == ['Always relevant']

    def test_no_matching_content(self, client, brand, partner, make_post, auth_headers):
        make_post(brand, title='Facebook only', is_evergreen=True, platforms=['facebook'])

        response = client.post('/api/content-posts/evergreen-schedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-02-01T12:00:00Z', 'platforms': ['facebook', 'instagram'],
            'partner_ids': [partner.id]
        })

        assert response.status_code == 404

    def test_missing_date(self, client, brand, partner, auth_headers):
        response = client.post('/api/content-posts/evergreen-schedule', headers=auth_headers(brand), json={
            'platforms': ['facebook'], 'partner_ids': [partner.id]
        })
        assert response.status_code == 400

    def test_unknown_partners(self, client, brand, make_post, auth_headers):
        make_post(brand, is_evergreen=True)
        response = client.post('/api/content-posts/evergreen-schedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-02-01T12:00:00Z', 'platforms': ['facebook'], 'partner_ids': [999]
        })
        assert response.status_code == 404

    def test_rotation_avoids_repeats_until_exhausted(self, service, brand, partner, make_post):
        pool = {make_post(brand, title=f'Evergreen {i}', is_evergreen=True).id for i in range(3)}
        rng = random.Random(42)
        start = datetime(2030, 1, 1)

        picks = []
        for day in range(3):
            result = service.schedule_evergreen(
                brand.id, brand.id, start + timedelta(days=day), ['facebook'], [partner.id], rng=rng
            )
            picks.append(result['assignments'][0]['selected_post']['id'])

        assert set(picks) == pool

        # Pool exhausted, so the next rotation may pick anything again
        result = service.schedule_evergreen(
            brand.id, brand.id, start + timedelta(days=3), ['facebook'], [partner.id], rng=rng
        )
        assert result['assignments'][0]['selected_post']['id'] in pool

    def test_rotation_rejects_other_brands(self, service, brand, other_brand, partner, make_partner, make_post):
        make_post(brand, is_evergreen=True)
        foreign = make_partner(other_brand, name='Foreign')

        with pytest.raises(DistributionError) as exc:
            service.schedule_evergreen(
                brand.id, brand.id, datetime(2030, 1, 1), ['facebook'], [partner.id, foreign.id]
            )

        assert exc.value.status_code == 403
        assert len(DataService().get_posts(brand.id, is_evergreen=True)) == 1

    def test_rotation_endpoint_rejects_other_brands(self, client, brand, other_brand, make_partner, make_post,
                                                    auth_headers):
        make_post(brand, is_evergreen=True)
        foreign = make_partner(other_brand, name='Foreign')

        response = client.post('/api/content-posts/evergreen-schedule', headers=auth_headers(brand), json={
            'scheduled_date': '2030-02-01T12:00:00Z', 'platforms': ['facebook'], 'partner_ids': [foreign.id]
        })

        assert response.status_code == 403

    def test_history_outside_pool_does_not_exhaust_it(self, service, brand, partner, make_post):
        both = ['facebook', 'instagram']
        received = make_post(brand, title='Received', is_evergreen=True, platforms=both)
        fresh = make_post(brand, title='Fresh', is_evergreen=True, platforms=both)
        facebook_only = make_post(brand, title='Facebook only', is_evergreen=True, platforms=['facebook'])

        for day, selected in enumerate([received, facebook_only], start=1):
            parent = make_post(
                brand, title=f'Rotation {day}', is_evergreen=True, status=PostStatus.SCHEDULED,
                scheduled_date=datetime(2030, 1, day), metadata={'is_scheduled_evergreen': True}
            )
            db.session.add(DBPostAssignment(
                parent.id, partner.id, metadata={'selected_evergreen_post_id': selected.id}
            ))
        db.session.commit()

        picks = set()
        for seed in range(30):
            result = service.schedule_evergreen(
                brand.id, brand.id, datetime(2030, 2, 1) + timedelta(days=seed), both, [partner.id],
                rng=random.Random(seed)
            )
            picks.add(result['assignments'][0]['selected_post']['id'])
            # Undo so every seed starts from the same history
            data = DataService()
            data.delete_post(data.get_post(result['parent_post']['id']))

        assert picks == {fresh.id}
