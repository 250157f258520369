"""
Ignyt - Background Scheduler
Publishes scheduled posts and watches social account tokens
Uses APScheduler for in-process job scheduling
"""
import logging
from datetime import datetime, timedelta
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

# Google tokens are refreshed this long before they lapse
TOKEN_REFRESH_WINDOW = timedelta(hours=24)

# Global scheduler instance
scheduler = None


def init_scheduler(app):
    """Initialize the background scheduler with the Flask app context"""
    global scheduler

    if scheduler is not None:
        logger.info("Scheduler already initialized")
        return scheduler

    scheduler = BackgroundScheduler(
        job_defaults={
            'coalesce': True,  # Combine missed runs into one
            'max_instances': 1,  # Only one instance of each job at a time
            'misfire_grace_time': 3600  # Allow 1 hour grace for missed jobs
        }
    )

    # Store app reference for context
    scheduler.app = app

    _add_scheduled_jobs(app)

    scheduler.start()
    logger.info("Background scheduler started")

    return scheduler


def _add_scheduled_jobs(app):
    """Add all scheduled jobs"""

    # Publish due posts every 5 minutes
    scheduler.add_job(
        func=publish_due_posts,
        trigger=IntervalTrigger(minutes=5),
        id='publish_due_posts',
        name='Publish Scheduled Posts',
        replace_existing=True,
        kwargs={'app': app}
    )

    # Token check every hour on the hour
    scheduler.add_job(
        func=check_token_expiry,
        trigger=CronTrigger(minute=0),
        id='check_token_expiry',
        name='Check Social Token Expiry',
        replace_existing=True,
        kwargs={'app': app}
    )


def shutdown_scheduler():
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
    scheduler = None


def get_scheduler_status():
    """Get current scheduler status and job list"""
    if scheduler is None:
        return {'status': 'not_initialized', 'jobs': []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        })

    return {
        'status': 'running' if scheduler.running else 'stopped',
        'jobs': jobs
    }


def run_job_now(job_id):
    """Manually trigger a job to run immediately"""
    if scheduler is None:
        return {'error': 'Scheduler not initialized'}

    job = scheduler.get_job(job_id)
    if job:
        job.modify(next_run_time=datetime.now())
        return {'success': True, 'message': f'Job {job_id} triggered'}
    return {'error': f'Job {job_id} not found'}


def publish_due_posts(app, now=None):
    """
    Publish scheduled content that is due
    Runs every 5 minutes to check for posts where:
    - status = 'scheduled'
    - scheduled_date <= now
    """
    with app.app_context():
        from app.services.distribution_service import get_distribution_service

        now = now or datetime.utcnow()
        logger.info(f"Publish check running at {now.isoformat()}")

        try:
            summary = get_distribution_service().publish_due_posts(now)
        except Exception as e:
            logger.error(f"Scheduled publishing failed: {e}", exc_info=True)
            from app.database import db
            db.session.rollback()
            return {'error': str(e)}

        if summary['posts']:
            logger.info(
                f"Published {summary['published']} assignment(s) across {summary['posts']} post(s), "
                f"{summary['failed']} failed"
            )
        return summary


def check_token_expiry(app, now=None):
    """
    Keep social account tokens usable
    - Google tokens close to expiry are refreshed
    - Tokens past expiry mark the account 'expired' and the partner 'needs_attention'
    """
    with app.app_context():
        from app.database import db
        from app.models.db_models import AccountStatus, PartnerStatus
        from app.services.db_service import DataService
        from app.services.email_service import get_email_service
        from app.services.oauth_service import get_oauth_service, token_expiry_from, OAuthError

        data_service = DataService()
        oauth = get_oauth_service()
        now = now or datetime.utcnow()
        refreshed = 0
        expired = 0

        for account in data_service.get_accounts_expiring_before(now + TOKEN_REFRESH_WINDOW):
            if account.platform == 'google' and account.refresh_token:
                try:
                    tokens = oauth.refresh_token('google', account.refresh_token)
                    account.access_token = tokens['access_token']
                    account.refresh_token = tokens.get('refresh_token') or account.refresh_token
                    account.token_expiry = token_expiry_from(tokens.get('expires_in'))
                    data_service.save_account(account)
                    refreshed += 1
                    logger.info(f"Refreshed Google token for account {account.id}")
                    continue
                except OAuthError as e:
                    logger.warning(f"Google token refresh failed for account {account.id}: {e}")

            if not account.is_token_expired(now):
                continue

            account.status = AccountStatus.EXPIRED
            partner = data_service.get_partner(account.partner_id)
            if partner and partner.status != PartnerStatus.INACTIVE:
                partner.set_status(PartnerStatus.NEEDS_ATTENTION)
            db.session.commit()
            expired += 1
            logger.warning(f"{account.platform} token expired for account {account.id} (partner {account.partner_id})")

            if partner and partner.contact_email:
                get_email_service().send_token_expired(partner.contact_email, partner.name, account.platform)

        return {'refreshed': refreshed, 'expired': expired}
