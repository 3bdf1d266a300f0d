import logging
from datetime import date
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import Settings, get_settings
from database import Database
from recurrence import local_today
from services import ReminderService, users_with_reminders


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, database: Database, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.database = database
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)

    def run_reminder_sweep(
        self, source: str = "manual", today: Optional[date] = None
    ) -> int:
        today = today or local_today()
        logger.info(f"reminder_sweep: source={source} today={today}")
        count = 0
        with self.database.session_scope() as session:
            for user_id in users_with_reminders(session):
                service = ReminderService(
                    session, user_id, self.settings.reminder_window_days
                )
                for reminder in service.upcoming(today):
                    if reminder.reminder_date <= today:
                        logger.info(
                            f"reminder_due: user={user_id} bill={reminder.bill_name!r} "
                            f"due={reminder.due_date} amount={reminder.amount}"
                        )
                        count += 1
        logger.info(f"reminder_sweep: source={source} reminders_due={count}")
        return count

    def start(self) -> None:
        self.run_reminder_sweep("startup")

        trigger = CronTrigger(hour=7, minute=0)
        self.scheduler.add_job(
            self.run_reminder_sweep,
            trigger,
            args=["daily_07:00"],
            id="bill_reminders_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily 07:00 reminder sweep")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
