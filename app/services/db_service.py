"""
Ignyt - Database Service
SQLAlchemy-backed data operations for every resource
"""
from typing import Optional, List, Dict, Iterable
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, func

from app.database import db
from app.models.db_models import (
    DBUser, DBRetailPartner, DBSocialAccount, DBContentPost, DBPostAssignment,
    DBAnalytics, DBMediaItem, DBPartnerInvite,
    UserRole, PartnerStatus, AccountStatus, PostStatus
)

# Offered when a brand has no partner tags yet
DEFAULT_PARTNER_TAGS = ['Urban', 'Outdoor', 'Premium', 'Sale', 'Family', 'Summer', 'Winter', 'Gear']


class DataService:
    """
    Database-backed data service
    Every write commits immediately and rolls back on failure
    """

    def _commit(self):
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def rollback(self):
        """Discard pending changes, e.g. after a rejected update"""
        db.session.rollback()

    def _save(self, obj):
        db.session.add(obj)
        self._commit()
        return obj

    # ============================================
    # User Operations
    # ============================================

    def save_user(self, user: DBUser) -> DBUser:
        """Save or update a user"""
        return self._save(user)

    def get_user(self, user_id: int) -> Optional[DBUser]:
        """Get user by ID"""
        if user_id is None:
            return None
        return db.session.get(DBUser, user_id)

    def get_user_by_email(self, email: str) -> Optional[DBUser]:
        """Get user by email"""
        return DBUser.query.filter_by(email=email.strip().lower()).first()

    def get_user_by_username(self, username: str) -> Optional[DBUser]:
        return DBUser.query.filter_by(username=username.strip()).first()

    def get_user_by_login(self, identifier: str) -> Optional[DBUser]:
        """Look a user up by username or email"""
        if '@' in identifier:
            user = self.get_user_by_email(identifier)
            if user:
                return user
        return self.get_user_by_username(identifier)

    def update_last_login(self, user_id: int):
        """Update user's last login timestamp"""
        user = self.get_user(user_id)
        if user:
            user.last_login = datetime.utcnow()
            self._commit()

    def get_brands(self, include_inactive: bool = True) -> List[DBUser]:
        query = DBUser.query.filter_by(role=UserRole.BRAND)
        if not include_inactive:
            query = query.filter_by(is_active=True)
        return query.order_by(DBUser.created_at.desc()).all()

    def count_users_by_role(self) -> Dict[str, int]:
        rows = db.session.query(DBUser.role, func.count(DBUser.id)).group_by(DBUser.role).all()
        counts = {role: 0 for role in UserRole.ALL}
        counts.update({role: count for role, count in rows})
        return counts

    # ============================================
    # Retail Partner Operations
    # ============================================

    def save_partner(self, partner: DBRetailPartner) -> DBRetailPartner:
        """Save or update a retail partner"""
        return self._save(partner)

    def save_partners(self, partners: Iterable[DBRetailPartner]) -> List[DBRetailPartner]:
        """Save several partners in one transaction"""
        partners = list(partners)
        db.session.add_all(partners)
        self._commit()
        return partners

    def get_partner(self, partner_id: int) -> Optional[DBRetailPartner]:
        if partner_id is None:
            return None
        return db.session.get(DBRetailPartner, partner_id)

    def get_partners(self, brand_id: Optional[int] = None, status: Optional[str] = None,
                     limit: Optional[int] = None) -> List[DBRetailPartner]:
        """Get partners, optionally for one brand"""
        query = DBRetailPartner.query
        if brand_id is not None:
            query = query.filter_by(brand_id=brand_id)
        if status:
            query = query.filter_by(status=status)
        query = query.order_by(DBRetailPartner.created_at.desc(), DBRetailPartner.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def get_partners_by_ids(self, partner_ids: List[int]) -> List[DBRetailPartner]:
        if not partner_ids:
            return []
        return DBRetailPartner.query.filter(DBRetailPartner.id.in_(partner_ids)).all()

    def get_partners_for_user(self, user_id: int) -> List[DBRetailPartner]:
        """Partner rows linked to a partner login"""
        return DBRetailPartner.query.filter_by(user_id=user_id).all()

    def get_partner_tags(self, brand_id: int) -> List[str]:
        """Unique tags across a brand's partners, in first-seen order"""
        tags = []
        for partner in self.get_partners(brand_id):
            for tag in partner.tags:
                if tag not in tags:
                    tags.append(tag)
        return tags

    # ============================================
    # Social Account Operations
    # ============================================

    def save_account(self, account: DBSocialAccount) -> DBSocialAccount:
        return self._save(account)

    def get_account(self, account_id: int) -> Optional[DBSocialAccount]:
        if account_id is None:
            return None
        return db.session.get(DBSocialAccount, account_id)

    def get_account_by_platform_id(self, platform: str, platform_account_id: str) -> Optional[DBSocialAccount]:
        return DBSocialAccount.query.filter_by(
            platform=platform, account_id=str(platform_account_id)
        ).first()

    def get_accounts_for_partner(self, partner_id: int, status: Optional[str] = None) -> List[DBSocialAccount]:
        query = DBSocialAccount.query.filter_by(partner_id=partner_id)
        if status:
            query = query.filter_by(status=status)
        return query.order_by(DBSocialAccount.id).all()

    def get_accounts_for_brand(self, brand_id: int) -> List[DBSocialAccount]:
        partner_ids = [p.id for p in self.get_partners(brand_id)]
        if not partner_ids:
            return []
        return DBSocialAccount.query.filter(
            DBSocialAccount.partner_id.in_(partner_ids)
        ).order_by(DBSocialAccount.id).all()

    def get_eligible_accounts(self, partner_id: int, platforms: List[str]) -> List[DBSocialAccount]:
        """Active accounts of a partner on any of the given platforms"""
        if not platforms:
            return []
        return DBSocialAccount.query.filter(
            DBSocialAccount.partner_id == partner_id,
            DBSocialAccount.status == AccountStatus.ACTIVE,
            DBSocialAccount.platform.in_(platforms)
        ).order_by(DBSocialAccount.id).all()

    def get_accounts_expiring_before(self, cutoff: datetime) -> List[DBSocialAccount]:
        return DBSocialAccount.query.filter(
            DBSocialAccount.status == AccountStatus.ACTIVE,
            DBSocialAccount.token_expiry.isnot(None),
            DBSocialAccount.token_expiry <= cutoff
        ).all()

    def delete_account(self, account: DBSocialAccount) -> bool:
        db.session.delete(account)
        self._commit()
        return True

    # ============================================
    # Content Post Operations
    # ============================================

    def save_post(self, post: DBContentPost) -> DBContentPost:
        return self._save(post)

    def get_post(self, post_id: int) -> Optional[DBContentPost]:
        if post_id is None:
            return None
        return db.session.get(DBContentPost, post_id)

    def get_posts(self, brand_id: Optional[int] = None, status: Optional[str] = None,
                  is_evergreen: Optional[bool] = None) -> List[DBContentPost]:
        query = DBContentPost.query
        if brand_id is not None:
            query = query.filter_by(brand_id=brand_id)
        if status:
            query = query.filter_by(status=status)
        if is_evergreen is not None:
            query = query.filter_by(is_evergreen=is_evergreen)
        return query.order_by(DBContentPost.created_at.desc(), DBContentPost.id.desc()).all()

    def get_calendar_posts(self, brand_id: int, start: Optional[datetime] = None,
                           end: Optional[datetime] = None) -> List[DBContentPost]:
        """Scheduled or published posts, optionally within [start, end]"""
        query = DBContentPost.query.filter(
            DBContentPost.brand_id == brand_id,
            DBContentPost.status.in_([PostStatus.SCHEDULED, PostStatus.PUBLISHED])
        )
        if start is not None or end is not None:
            query = query.filter(or_(
                _date_within(DBContentPost.scheduled_date, start, end),
                _date_within(DBContentPost.published_date, start, end)
            ))
        return query.order_by(DBContentPost.scheduled_date).all()

    def get_due_posts(self, now: Optional[datetime] = None) -> List[DBContentPost]:
        """Scheduled posts whose date has passed"""
        now = now or datetime.utcnow()
        return DBContentPost.query.filter(
            DBContentPost.status == PostStatus.SCHEDULED,
            DBContentPost.scheduled_date.isnot(None),
            DBContentPost.scheduled_date <= now
        ).order_by(DBContentPost.scheduled_date).all()

    def delete_post(self, post: DBContentPost) -> bool:
        """Delete a post together with its assignments and analytics"""
        DBPostAssignment.query.filter_by(post_id=post.id).delete()
        DBAnalytics.query.filter_by(post_id=post.id).delete()
        db.session.delete(post)
        self._commit()
        return True

    # ============================================
    # Post Assignment Operations
    # ============================================

    def save_assignment(self, assignment: DBPostAssignment) -> DBPostAssignment:
        return self._save(assignment)

    def get_assignment(self, assignment_id: int) -> Optional[DBPostAssignment]:
        if assignment_id is None:
            return None
        return db.session.get(DBPostAssignment, assignment_id)

    def get_assignment_for(self, post_id: int, partner_id: int) -> Optional[DBPostAssignment]:
        return DBPostAssignment.query.filter_by(post_id=post_id, partner_id=partner_id).first()

    def get_assignments_for_post(self, post_id: int) -> List[DBPostAssignment]:
        return DBPostAssignment.query.filter_by(post_id=post_id).order_by(DBPostAssignment.id).all()

    def get_assignments_for_partners(self, partner_ids: List[int]) -> List[DBPostAssignment]:
        if not partner_ids:
            return []
        return DBPostAssignment.query.filter(
            DBPostAssignment.partner_id.in_(partner_ids)
        ).order_by(DBPostAssignment.created_at.desc()).all()

    def get_rotation_history(self, brand_id: int, partner_ids: List[int]) -> Dict[int, set]:
        """Evergreen post ids already rotated to each partner"""
        history = {partner_id: set() for partner_id in partner_ids}
        parents = [
            p for p in self.get_posts(brand_id, is_evergreen=True)
            if p.get_metadata().get('is_scheduled_evergreen')
        ]
        for parent in parents:
            for assignment in self.get_assignments_for_post(parent.id):
                if assignment.partner_id not in history:
                    continue
                selected = assignment.get_metadata().get('selected_evergreen_post_id')
                if selected is not None:
                    history[assignment.partner_id].add(selected)
        return history

    # ============================================
    # Analytics Operations
    # ============================================

    def save_analytics(self, row: DBAnalytics) -> DBAnalytics:
        return self._save(row)

    def get_analytics(self, brand_id: Optional[int] = None, post_id: Optional[int] = None,
                      partner_id: Optional[int] = None, platform: Optional[str] = None,
                      start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[DBAnalytics]:
        query = DBAnalytics.query
        if brand_id is not None:
            post_ids = db.session.query(DBContentPost.id).filter(DBContentPost.brand_id == brand_id)
            query = query.filter(DBAnalytics.post_id.in_(post_ids))
        if post_id is not None:
            query = query.filter(DBAnalytics.post_id == post_id)
        if partner_id is not None:
            query = query.filter(DBAnalytics.partner_id == partner_id)
        if platform:
            query = query.filter(DBAnalytics.platform == platform)
        if start is not None:
            query = query.filter(DBAnalytics.date >= start)
        if end is not None:
            query = query.filter(DBAnalytics.date < end)
        return query.order_by(DBAnalytics.date.desc()).all()

    # ============================================
    # Media Library Operations
    # ============================================

    def save_media(self, item: DBMediaItem) -> DBMediaItem:
        return self._save(item)

    def get_media(self, media_id: int) -> Optional[DBMediaItem]:
        if media_id is None:
            return None
        return db.session.get(DBMediaItem, media_id)

    def get_media_for_brand(self, brand_id: int) -> List[DBMediaItem]:
        return DBMediaItem.query.filter_by(brand_id=brand_id).order_by(
            DBMediaItem.created_at.desc(), DBMediaItem.id.desc()
        ).all()

    def get_media_by_tags(self, brand_id: int, tags: List[str]) -> List[DBMediaItem]:
        """Items carrying any of the given tags"""
        wanted = set(tags)
        return [item for item in self.get_media_for_brand(brand_id) if wanted & set(item.get_tags())]

    def delete_media(self, item: DBMediaItem) -> bool:
        db.session.delete(item)
        self._commit()
        return True

    # ============================================
    # Invite Operations
    # ============================================

    def save_invite(self, invite: DBPartnerInvite) -> DBPartnerInvite:
        return self._save(invite)

    def get_invite(self, invite_id: int) -> Optional[DBPartnerInvite]:
        if invite_id is None:
            return None
        return db.session.get(DBPartnerInvite, invite_id)

    def get_invite_by_token(self, token: str) -> Optional[DBPartnerInvite]:
        return DBPartnerInvite.query.filter_by(token=token).first()

    def get_active_invites(self, brand_id: int) -> List[DBPartnerInvite]:
        """Unaccepted, unexpired invites for a brand"""
        return DBPartnerInvite.query.filter(
            DBPartnerInvite.brand_id == brand_id,
            DBPartnerInvite.accepted_at.is_(None),
            DBPartnerInvite.expires_at > datetime.utcnow()
        ).order_by(DBPartnerInvite.created_at.desc()).all()

    def delete_invite(self, invite: DBPartnerInvite) -> bool:
        db.session.delete(invite)
        self._commit()
        return True

    # ============================================
    # Dashboard
    # ============================================

    def get_dashboard_stats(self, brand_id: int, now: Optional[datetime] = None) -> dict:
        """Everything the brand dashboard shows in one payload"""
        now = now or datetime.utcnow()
        posts = self.get_posts(brand_id)
        partners = self.get_partners(brand_id)

        analytics = self.get_analytics(brand_id=brand_id)
        total_engagements = sum(row.engagements or 0 for row in analytics)

        partner_stats = {status: 0 for status in PartnerStatus.ALL}
        for partner in partners:
            partner_stats[partner.status] = partner_stats.get(partner.status, 0) + 1

        recent_partners = sorted(
            partners,
            key=lambda p: p.connection_date or datetime.min,
            reverse=True
        )[:3]

        upcoming = sorted(
            [p for p in posts if p.status == PostStatus.SCHEDULED and p.scheduled_date and p.scheduled_date > now],
            key=lambda p: p.scheduled_date
        )[:3]

        return {
            'quick_stats': {
                'active_posts': len([p for p in posts if p.status in (PostStatus.SCHEDULED, PostStatus.PUBLISHED)]),
                'partner_count': len(partners),
                'scheduled_posts': len([p for p in posts if p.status == PostStatus.SCHEDULED]),
                'total_engagements': total_engagements
            },
            'recent_partners': [p.to_dict() for p in recent_partners],
            'partner_stats': partner_stats,
            'performance_metrics': self._performance_metrics(brand_id, now),
            'upcoming_posts': [p.to_dict() for p in upcoming],
            'recent_activity': self._recent_activity(posts, partners, limit=4)
        }

    def _performance_metrics(self, brand_id: int, now: datetime) -> dict:
        """Last 30 days against the 30 days before"""
        current_start = now - timedelta(days=30)
        previous_start = now - timedelta(days=60)
        current = _summarize(self.get_analytics(brand_id=brand_id, start=current_start, end=now))
        previous = _summarize(self.get_analytics(brand_id=brand_id, start=previous_start, end=current_start))

        metrics = {}
        for key in ('engagement_rate', 'click_through_rate', 'impressions'):
            metrics[key] = {
                'current': current[key],
                'previous': previous[key],
                'change': round(current[key] - previous[key], 2)
            }
        return metrics

    def _recent_activity(self, posts: List[DBContentPost], partners: List[DBRetailPartner],
                         limit: int) -> List[dict]:
        activities = []
        published = sorted(
            [p for p in posts if p.published_date],
            key=lambda p: p.published_date, reverse=True
        )[:limit]
        for post in published:
            activities.append({
                'type': 'post_published',
                'title': post.title,
                'timestamp': post.published_date,
                'details': {'partner_count': len(self.get_assignments_for_post(post.id))}
            })

        connected = sorted(
            [p for p in partners if p.connection_date],
            key=lambda p: p.connection_date, reverse=True
        )[:limit]
        for partner in connected:
            activities.append({
                'type': 'partner_connected',
                'title': partner.name,
                'timestamp': partner.connection_date,
                'details': {}
            })

        activities.sort(key=lambda a: a['timestamp'], reverse=True)
        return [
            {**a, 'timestamp': a['timestamp'].isoformat()}
            for a in activities[:limit]
        ]


def _date_within(column, start: Optional[datetime], end: Optional[datetime]):
    """Range check on one column; a missing bound is left open"""
    conditions = [column.isnot(None)]
    if start is not None:
        conditions.append(column >= start)
    if end is not None:
        conditions.append(column <= end)
    return and_(*conditions)


def _summarize(rows: List[DBAnalytics]) -> dict:
    impressions = sum(r.impressions or 0 for r in rows)
    engagements = sum(r.engagements or 0 for r in rows)
    clicks = sum(r.clicks or 0 for r in rows)
    return {
        'impressions': impressions,
        'engagement_rate': round(engagements / impressions * 100, 2) if impressions else 0.0,
        'click_through_rate': round(clicks / impressions * 100, 2) if impressions else 0.0
    }


# ============================================
# Helper Functions
# ============================================

def create_admin_user(username: str, email: str, name: str, password: str) -> DBUser:
    """Create an admin user"""
    user = DBUser(
        username=username,
        email=email,
        name=name,
        password=password,
        role=UserRole.ADMIN
    )
    return user

