"""
Ignyt - Distribution Service
Assigns brand posts to retail partners, composes each partner's message and
publishes it to the partner's connected accounts
"""
import re
import random
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from app.models.db_models import (
    DBContentPost, DBPostAssignment, DBRetailPartner, ValidationError,
    Platform, PostStatus, AssignmentStatus
)
from app.services.db_service import DataService
from app.services.social_service import SocialService, INSTAGRAM_CAPTION_LIMIT, GBP_SUMMARY_LIMIT

logger = logging.getLogger(__name__)

PLATFORM_TEXT_LIMITS = {
    Platform.INSTAGRAM: INSTAGRAM_CAPTION_LIMIT,
    Platform.GOOGLE: GBP_SUMMARY_LIMIT,
}


class DistributionError(Exception):
    """A distribution request that cannot be carried out"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ============================================
# Message composition
# ============================================

def parse_tags(custom_tags) -> List[str]:
    """Split comma/whitespace separated tags into '#tag' form, de-duplicated"""
    if not custom_tags:
        return []
    if isinstance(custom_tags, (list, tuple)):
        raw = [str(t) for t in custom_tags]
    else:
        raw = re.split(r'[,\s]+', str(custom_tags))

    tags = []
    for tag in raw:
        tag = tag.strip().lstrip('#')
        if tag and f'#{tag}' not in tags:
            tags.append(f'#{tag}')
    return tags


def compose_message(description: str, custom_tags=None, footer: Optional[str] = None,
                    platform: Optional[str] = None) -> str:
    """Description, then hashtags, then footer; cut to the platform's limit"""
    parts = [(description or '').strip()]
    tags = parse_tags(custom_tags)
    if tags:
        parts.append(' '.join(tags))
    if footer and footer.strip():
        parts.append(footer.strip())

    text = '\n\n'.join(p for p in parts if p)

    limit = PLATFORM_TEXT_LIMITS.get(platform)
    if limit and len(text) > limit:
        text = text[:limit]
    return text


def is_rotation_parent(post: DBContentPost) -> bool:
    return bool(post.is_evergreen and post.get_metadata().get('is_scheduled_evergreen'))


class DistributionService:
    """Post assignment, scheduling and publishing"""

    def __init__(self, data_service: DataService = None, social_service: SocialService = None):
        self.data = data_service or DataService()
        self.social = social_service or SocialService()

    # ==========================================
    # ASSIGNMENT
    # ==========================================

    def assign_post(self, post: DBContentPost, partner_ids: List[int],
                    custom_footer: Optional[str] = None,
                    custom_tags: Optional[str] = None) -> List[DBPostAssignment]:
        """
        Assign a post to partners of its brand.

        Existing (post, partner) assignments are returned unchanged, so
        assigning twice never creates a duplicate.
        """
        partners = self._brand_partners(post.brand_id, partner_ids)

        assignments = []
        for partner in partners:
            existing = self.data.get_assignment_for(post.id, partner.id)
            if existing:
                assignments.append(existing)
                continue
            assignment = DBPostAssignment(
                post_id=post.id,
                partner_id=partner.id,
                custom_footer=custom_footer,
                custom_tags=custom_tags
            )
            self.data.save_assignment(assignment)
            assignments.append(assignment)

        logger.info(f"Post {post.id} assigned to {len(assignments)} partner(s)")
        return assignments

    def _brand_partners(self, brand_id: int, partner_ids: List[int]) -> List[DBRetailPartner]:
        partners = self.data.get_partners_by_ids(partner_ids)
        found = {p.id for p in partners}
        missing = [pid for pid in partner_ids if pid not in found]
        if missing:
            raise DistributionError(f"Partner(s) not found: {', '.join(map(str, missing))}", 404)
        foreign = [p.id for p in partners if p.brand_id != brand_id]
        if foreign:
            raise DistributionError(
                f"Partner(s) {', '.join(map(str, foreign))} do not belong to this brand", 403
            )
        order = {pid: i for i, pid in enumerate(partner_ids)}
        return sorted(partners, key=lambda p: order[p.id])

    def update_customization(self, assignment: DBPostAssignment, data: Dict[str, Any]) -> DBPostAssignment:
        if 'custom_footer' in data:
            assignment.custom_footer = data['custom_footer'] or None
        if 'custom_tags' in data:
            tags = data['custom_tags']
            if isinstance(tags, (list, tuple)):
                tags = ', '.join(str(t) for t in tags)
            assignment.custom_tags = tags or None
        return self.data.save_assignment(assignment)

    # ==========================================
    # SCHEDULING
    # ==========================================

    def schedule_post(self, post: DBContentPost, scheduled_date: Optional[datetime],
                      partner_ids: Optional[List[int]] = None, custom_footer: Optional[str] = None,
                      custom_tags: Optional[str] = None) -> List[DBPostAssignment]:
        """Put a post on the calendar and assign it to the given partners"""
        if post.status == PostStatus.PUBLISHED:
            raise DistributionError('Published posts cannot be scheduled again', 409)

        post.scheduled_date = scheduled_date
        post.set_status(PostStatus.SCHEDULED)
        self.data.save_post(post)

        assignments = []
        if partner_ids:
            assignments = self.assign_post(post, partner_ids, custom_footer, custom_tags)
        return assignments

    def reschedule_post(self, post: DBContentPost, scheduled_date: datetime) -> DBContentPost:
        """Move a post to another date (calendar drag-and-drop)"""
        if scheduled_date is None:
            raise ValidationError('scheduled_date is required')
        if post.status == PostStatus.PUBLISHED:
            raise DistributionError('Published posts cannot be rescheduled', 409)

        post.scheduled_date = scheduled_date
        if post.status == PostStatus.DRAFT:
            post.set_status(PostStatus.SCHEDULED)
        return self.data.save_post(post)

    def schedule_evergreen(self, brand_id: int, creator_id: int, scheduled_date: datetime,
                           platforms: List[str], partner_ids: List[int],
                           rng: Optional[random.Random] = None) -> Dict[str, Any]:
        """
        Schedule one rotation of evergreen content.

        Creates a scheduled parent post for the date and gives every selected
        partner one evergreen post that supports all requested platforms. A
        partner gets posts it has not received before until every candidate
        has been used, after which the whole pool is open again.
        """
        rng = rng or random
        if scheduled_date is None:
            raise ValidationError('scheduled_date is required')
        platforms = Platform.validate(platforms)
        if not partner_ids:
            raise ValidationError('At least one partner ID is required')

        partners = sorted(self._brand_partners(brand_id, partner_ids), key=lambda p: p.id)

        pool = sorted(
            [
                p for p in self.data.get_posts(brand_id, is_evergreen=True)
                if not is_rotation_parent(p) and p.supports_platforms(platforms)
            ],
            key=lambda p: p.id
        )
        if not pool:
            raise DistributionError('No evergreen content supports the selected platforms', 404)

        history = self.data.get_rotation_history(brand_id, [p.id for p in partners])

        parent = DBContentPost(
            brand_id=brand_id,
            creator_id=creator_id,
            title=f"Evergreen Content - {scheduled_date.strftime('%Y-%m-%d')}",
            description=f"Automated evergreen content for {len(partners)} partners on {', '.join(platforms)}",
            platforms=platforms,
            scheduled_date=scheduled_date,
            is_evergreen=True,
            status=PostStatus.SCHEDULED,
            metadata={'partner_count': len(partners), 'is_scheduled_evergreen': True}
        )
        self.data.save_post(parent)

        pool_ids = {p.id for p in pool}
        results = []
        for partner in partners:
            # Only history inside the current pool counts towards exhausting it
            used = history.get(partner.id, set()) & pool_ids
            available = [p for p in pool if p.id not in used] or pool
            selected = rng.choice(available)

            assignment = DBPostAssignment(
                post_id=parent.id,
                partner_id=partner.id,
                metadata={
                    'selected_evergreen_post_id': selected.id,
                    'original_title': selected.title,
                    'original_description': selected.description,
                    'original_image_url': selected.image_url
                }
            )
            self.data.save_assignment(assignment)
            results.append({
                'assignment': assignment.to_dict(),
                'selected_post': {'id': selected.id, 'title': selected.title},
                'partner': {'id': partner.id, 'name': partner.name}
            })

        logger.info(f"Evergreen rotation {parent.id} scheduled for {len(partners)} partner(s)")
        return {
            'parent_post': parent.to_dict(),
            'assignments': results,
            'partners': len(partners)
        }

    # ==========================================
    # COMPOSITION
    # ==========================================

    def content_for(self, assignment: DBPostAssignment, post: DBContentPost) -> Dict[str, Optional[str]]:
        """The title/description/image an assignment publishes; rotations carry their own"""
        meta = assignment.get_metadata()
        if 'selected_evergreen_post_id' in meta:
            return {
                'title': meta.get('original_title') or post.title,
                'description': meta.get('original_description') or post.description,
                'image_url': meta.get('original_image_url')
            }
        return {'title': post.title, 'description': post.description, 'image_url': post.image_url}

    def message_for(self, assignment: DBPostAssignment, post: DBContentPost,
                    partner: Optional[DBRetailPartner], platform: Optional[str] = None) -> str:
        footer = assignment.custom_footer or (partner.footer_template if partner else None)
        content = self.content_for(assignment, post)
        return compose_message(content['description'], assignment.custom_tags, footer, platform)

    def preview_assignment(self, assignment: DBPostAssignment) -> Dict[str, Any]:
        post = self.data.get_post(assignment.post_id)
        partner = self.data.get_partner(assignment.partner_id)
        if not post:
            raise DistributionError('Post not found', 404)
        content = self.content_for(assignment, post)
        return {
            'assignment_id': assignment.id,
            'title': content['title'],
            'image_url': content['image_url'],
            'messages': {
                platform: self.message_for(assignment, post, partner, platform)
                for platform in post.get_platforms()
            }
        }

    # ==========================================
    # PUBLISHING
    # ==========================================

    def publish_assignment(self, assignment: DBPostAssignment, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Publish one assignment to every eligible account of its partner.

        Any successful platform marks the assignment published (and its post);
        no eligible accounts or only failures mark it failed.
        """
        if assignment.status == AssignmentStatus.PUBLISHED:
            raise DistributionError('Assignment is already published', 409)

        now = now or datetime.utcnow()
        post = self.data.get_post(assignment.post_id)
        if not post:
            raise DistributionError('Post not found', 404)
        partner = self.data.get_partner(assignment.partner_id)

        content = self.content_for(assignment, post)
        accounts = self.data.get_eligible_accounts(assignment.partner_id, post.get_platforms())

        results = []
        for account in accounts:
            if account.is_token_expired(now):
                results.append({
                    'account_id': account.id,
                    'platform': account.platform,
                    'success': False,
                    'error': 'Access token expired - please reconnect'
                })
                continue

            message = self.message_for(assignment, post, partner, account.platform)
            outcome = self.social.publish(account, message, image_url=content['image_url'])
            results.append({
                'account_id': account.id,
                'platform': account.platform,
                'success': bool(outcome.get('success')),
                'post_id': outcome.get('post_id'),
                'url': outcome.get('url'),
                'error': outcome.get('error')
            })

        succeeded = [r for r in results if r['success']]

        meta = assignment.get_metadata()
        meta['publish_results'] = results
        meta['last_attempt'] = now.isoformat()
        if not accounts:
            meta['publish_error'] = 'No active social accounts for the post platforms'
        assignment.set_metadata(meta)

        if succeeded:
            assignment.status = AssignmentStatus.PUBLISHED
            assignment.published_url = next((r['url'] for r in succeeded if r.get('url')), None)
            assignment.published_date = now
            if post.status != PostStatus.PUBLISHED:
                post.status = PostStatus.PUBLISHED
                post.published_date = now
                self.data.save_post(post)
        else:
            assignment.status = AssignmentStatus.FAILED

        self.data.save_assignment(assignment)

        if succeeded:
            logger.info(f"Assignment {assignment.id} published on {len(succeeded)}/{len(results)} account(s)")
        else:
            logger.warning(f"Assignment {assignment.id} failed to publish ({len(results)} account(s) tried)")

        return {
            'assignment_id': assignment.id,
            'partner_id': assignment.partner_id,
            'status': assignment.status,
            'published_url': assignment.published_url,
            'results': results
        }

    def publish_post(self, post: DBContentPost, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Publish every pending assignment of a post"""
        pending = [
            a for a in self.data.get_assignments_for_post(post.id)
            if a.status == AssignmentStatus.PENDING
        ]

        results = [self.publish_assignment(a, now=now) for a in pending]
        published = len([r for r in results if r['status'] == AssignmentStatus.PUBLISHED])

        return {
            'post_id': post.id,
            'post_status': post.status,
            'attempted': len(results),
            'published': published,
            'failed': len(results) - published,
            'results': results
        }

    def publish_due_posts(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Publish scheduled posts whose date has passed"""
        now = now or datetime.utcnow()
        summary = {'posts': 0, 'published': 0, 'failed': 0}

        for post in self.data.get_due_posts(now):
            result = self.publish_post(post, now=now)
            if not result['attempted']:
                continue
            summary['posts'] += 1
            summary['published'] += result['published']
            summary['failed'] += result['failed']

        return summary


# Singleton instance
_distribution_service = None


def get_distribution_service() -> DistributionService:
    """Get or create distribution service instance"""
    global _distribution_service
    if _distribution_service is None:
        _distribution_service = DistributionService()
    return _distribution_service
