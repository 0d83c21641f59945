import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from core.config import settings
from core.database import async_session_maker
from core.exceptions import SyncException
from ingestion.extractors.provider_client import ProviderClient
from ingestion.runner import SyncOrchestrator
from ingestion.status_refresh import StatusRefresher

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Daily status refresh followed by the daily market sync"""

    def __init__(self, config=settings, session_factory=async_session_maker):
        self.config = config
        self.session_factory = session_factory
        self.scheduler = AsyncIOScheduler(timezone=config.SCHEDULER_TIMEZONE)

    async def run_sync_job(self):
        """Job to sync every configured market"""
        logger.info("Scheduler: Starting market sync job")
        try:
            orchestrator = SyncOrchestrator(session_factory=self.session_factory, config=self.config)
            report = await orchestrator.run_sync()
            for error in report.errors:
                logger.error(f"Scheduler: market {error.market} failed - {error.message}")
        except SyncException as e:
            logger.error(f"Scheduler: sync job failed - {e.message}", extra={"error_context": e.to_dict()})

    async def run_status_refresh_job(self):
        """Job to refresh listing status of tracked properties"""
        logger.info("Scheduler: Starting status refresh job")
        if not self.config.PROVIDER_API_URL or not self.config.PROVIDER_API_KEY:
            logger.error("Scheduler: provider credentials missing, skipping status refresh")
            return

        async with ProviderClient(
            self.config.PROVIDER_API_URL,
            self.config.PROVIDER_API_KEY,
            timeout=self.config.PROVIDER_TIMEOUT_SECONDS,
        ) as client:
            async with self.session_factory() as session:
                refresher = StatusRefresher(
                    session,
                    client,
                    batch_size=self.config.SYNC_DETAIL_BATCH_SIZE,
                    db_chunk_size=self.config.STATUS_REFRESH_DB_CHUNK,
                    rate_limit_delay=self.config.SYNC_RATE_LIMIT_DELAY_SECONDS,
                )
                report = await refresher.run()
                logger.info(f"Scheduler: status refresh updated {report.total_updated} properties")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_status_refresh_job,
            trigger=CronTrigger(
                hour=self.config.STATUS_REFRESH_CRON_HOUR,
                minute=self.config.STATUS_REFRESH_CRON_MINUTE,
                timezone=self.config.SCHEDULER_TIMEZONE,
            ),
            id="status_refresh_job",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=CronTrigger(
                hour=self.config.SYNC_CRON_HOUR,
                minute=self.config.SYNC_CRON_MINUTE,
                timezone=self.config.SCHEDULER_TIMEZONE,
            ),
            id="sync_job",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Sync Scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Sync Scheduler stopped")
