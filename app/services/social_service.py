"""
Ignyt - Social Service
Facebook, Instagram and Google Business Profile publishing and insights
"""
import requests
import logging
from typing import Dict, List, Any, Optional
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

GRAPH_API_URL = 'https://graph.facebook.com/v18.0'

# Per-platform caption limits
INSTAGRAM_CAPTION_LIMIT = 2200
GBP_SUMMARY_LIMIT = 1500

DEFAULT_FACEBOOK_METRICS = ['page_impressions', 'page_engaged_users']
DEFAULT_INSTAGRAM_METRICS = ['impressions', 'reach']


class SocialService:
    """Social media publishing service"""

    def publish(self, account, message: str, image_url: str = None,
                scheduled_time: Optional[datetime] = None) -> Dict[str, Any]:
        """Publish to whichever platform a SocialAccount lives on"""
        if account.platform == 'facebook':
            return self.publish_to_facebook(
                page_id=account.account_id,
                access_token=account.access_token,
                message=message,
                image_url=image_url,
                scheduled_time=scheduled_time
            )
        elif account.platform == 'instagram':
            return self.publish_to_instagram(
                account_id=account.account_id,
                access_token=account.access_token,
                image_url=image_url,
                caption=message
            )
        elif account.platform == 'google':
            return self.publish_to_gbp(
                location_id=account.account_id,
                access_token=account.access_token,
                text=message,
                image_url=image_url
            )
        return {'success': False, 'error': f'Unsupported platform: {account.platform}'}

    def publish_to_gbp(
        self,
        location_id: str,
        access_token: str,
        text: str,
        image_url: str = None,
        account_id: str = None
    ) -> Dict[str, Any]:
        """
        Publish post to Google Business Profile

        Args:
            location_id: GBP location ID (or full accounts/.../locations/... path)
            access_token: OAuth access token for GBP
            text: Post content
            image_url: Optional image URL
            account_id: GBP account ID, wildcard when omitted
        """
        if not location_id or not access_token:
            return {'success': False, 'error': 'Google Business not connected - please reconnect'}

        try:
            post_data = {
                'languageCode': 'en-US',
                'summary': text[:GBP_SUMMARY_LIMIT],
                'topicType': 'STANDARD'
            }

            if image_url:
                post_data['media'] = [{
                    'mediaFormat': 'PHOTO',
                    'sourceUrl': image_url
                }]

            if 'accounts/' in str(location_id) and 'locations/' in str(location_id):
                base_path = location_id
            else:
                base_path = f'accounts/{account_id or "-"}/locations/{location_id}'

            url = f'https://mybusiness.googleapis.com/v4/{base_path}/localPosts'

            logger.info(f"Publishing to GBP: {url}")

            response = requests.post(
                url,
                headers={
                    'Authorization': f'Bearer {access_token}',
                    'Content-Type': 'application/json'
                },
                json=post_data,
                timeout=30
            )

            if response.status_code == 401:
                return {'success': False, 'error': 'GBP token expired - please reconnect Google Business'}

            if response.status_code == 404:
                return {'success': False, 'error': 'GBP location not found - please reconnect Google Business'}

            if not response.ok:
                error_text = response.text[:200]
                logger.error(f"GBP API error {response.status_code}: {error_text}")
                return {'success': False, 'error': f'GBP error: {error_text}'}

            result = response.json()

            return {
                'success': True,
                'post_id': result.get('name', '').split('/')[-1],
                'url': result.get('searchUrl'),
                'state': result.get('state', 'LIVE')
            }

        except requests.RequestException as e:
            logger.error(f"GBP publish error: {e}")
            return {'success': False, 'error': f'GBP API error: {str(e)}'}

    def publish_to_facebook(
        self,
        page_id: str,
        access_token: str,
        message: str = '',
        link: str = None,
        image_url: str = None,
        scheduled_time: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Publish post to Facebook Page

        Args:
            page_id: Facebook Page ID
            access_token: Page access token
            message: Post message
            link: URL to share
            image_url: Image URL for photo post
            scheduled_time: Let Facebook publish the post later instead of now
        """
        if not page_id or not access_token:
            return {'success': False, 'error': 'Facebook not connected - please reconnect'}

        if image_url:
            endpoint = f'{GRAPH_API_URL}/{page_id}/photos'
            data = {
                'url': image_url,
                'caption': message,
                'access_token': access_token
            }
        else:
            endpoint = f'{GRAPH_API_URL}/{page_id}/feed'
            data = {
                'message': message,
                'access_token': access_token
            }
            if link:
                data['link'] = link

        if scheduled_time is not None:
            timestamp = to_unix(scheduled_time)
            if timestamp <= int(datetime.now(timezone.utc).timestamp()):
                return {'success': False, 'error': 'Scheduled time must be in the future'}
            data['published'] = 'false'
            data['scheduled_publish_time'] = str(timestamp)

        try:
            logger.info(f"Publishing to Facebook page {page_id}")

            response = requests.post(endpoint, data=data, timeout=30)
            result = response.json()

            if 'error' in result:
                error_msg = result['error'].get('message', 'Unknown error')
                error_code = result['error'].get('code', 0)
                logger.error(f"Facebook API error ({error_code}): {error_msg}")

                if error_code == 200 or 'pages_manage_posts' in error_msg:
                    return {
                        'success': False,
                        'error': 'Facebook permissions not granted. Please reconnect Facebook and grant "Manage Posts" permission.'
                    }
                elif error_code == 190:
                    return {'success': False, 'error': 'Facebook token expired - please reconnect'}

                return {'success': False, 'error': f'Facebook error: {error_msg}'}

            # Photo posts answer with both the photo id and the feed post id
            post_id = result.get('post_id') or result.get('id', '')

            return {
                'success': True,
                'post_id': post_id,
                'url': f'https://www.facebook.com/{post_id}' if post_id else None,
                'scheduled': scheduled_time is not None
            }

        except (requests.RequestException, ValueError) as e:
            logger.error(f"Facebook publish error: {e}")
            return {'success': False, 'error': f'Facebook API error: {str(e)}'}

    def publish_to_instagram(
        self,
        account_id: str,
        access_token: str,
        image_url: str = None,
        caption: str = ''
    ) -> Dict[str, Any]:
        """
        Publish post to Instagram Business Account

        Note: Instagram API requires image posts - no text-only posts
        """
        if not account_id or not access_token:
            return {'success': False, 'error': 'Instagram not connected - please reconnect'}

        if not image_url:
            return {'success': False, 'error': 'Instagram requires an image URL'}

        try:
            # Step 1: Create media container
            container_response = requests.post(
                f'{GRAPH_API_URL}/{account_id}/media',
                data={
                    'image_url': image_url,
                    'caption': caption[:INSTAGRAM_CAPTION_LIMIT],
                    'access_token': access_token
                },
                timeout=30
            )

            container_response.raise_for_status()
            container_id = container_response.json().get('id')

            # Step 2: Publish container
            publish_response = requests.post(
                f'{GRAPH_API_URL}/{account_id}/media_publish',
                data={
                    'creation_id': container_id,
                    'access_token': access_token
                },
                timeout=30
            )

            publish_response.raise_for_status()
            media_id = publish_response.json().get('id', '')

            return {
                'success': True,
                'post_id': media_id,
                'url': self._instagram_permalink(media_id, access_token)
            }

        except (requests.RequestException, ValueError) as e:
            logger.error(f"Instagram publish error: {e}")
            return {'success': False, 'error': f'Instagram API error: {str(e)}'}

    def _instagram_permalink(self, media_id: str, access_token: str) -> Optional[str]:
        """The public URL of a published media object, if Instagram hands it out"""
        if not media_id:
            return None
        try:
            response = requests.get(
                f'{GRAPH_API_URL}/{media_id}',
                params={'fields': 'permalink', 'access_token': access_token},
                timeout=30
            )
            return response.json().get('permalink')
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not fetch Instagram permalink for {media_id}: {e}")
            return None

    # ==========================================
    # INSIGHTS
    # ==========================================

    def get_facebook_insights(
        self,
        page_id: str,
        access_token: str,
        metrics: List[str] = None,
        since: int = None,
        until: int = None
    ) -> Dict[str, Any]:
        """Get Facebook Page insights between two unix timestamps"""
        params = {
            'metric': ','.join(metrics or DEFAULT_FACEBOOK_METRICS),
            'access_token': access_token
        }
        if since:
            params['since'] = since
        if until:
            params['until'] = until
        return self._get_insights(f'{GRAPH_API_URL}/{page_id}/insights', params, 'Facebook')

    def get_instagram_insights(
        self,
        account_id: str,
        access_token: str,
        metrics: List[str] = None,
        period: str = 'day'
    ) -> Dict[str, Any]:
        """Get Instagram business account insights"""
        params = {
            'metric': ','.join(metrics or DEFAULT_INSTAGRAM_METRICS),
            'period': period,
            'access_token': access_token
        }
        return self._get_insights(f'{GRAPH_API_URL}/{account_id}/insights', params, 'Instagram')

    def _get_insights(self, url: str, params: Dict, label: str) -> Dict[str, Any]:
        try:
            response = requests.get(url, params=params, timeout=30)
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"{label} insights error: {e}")
            return {'success': False, 'error': f'{label} API error: {str(e)}'}

        if 'error' in result:
            return {'success': False, 'error': f"{label} error: {result['error'].get('message', 'Unknown error')}"}

        return {'success': True, 'data': result.get('data', [])}


def to_unix(value: datetime) -> int:
    """Naive datetimes are UTC"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


# Singleton instance
_social_service = None


def get_social_service() -> SocialService:
    """Get or create social service instance"""
    global _social_service
    if _social_service is None:
        _social_service = SocialService()
    return _social_service
