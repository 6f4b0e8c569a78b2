"""
Scheduler Service for FreightBridge

Runs the system-triggered parts of the workflow:
- Selection for quote requests whose bidding window elapsed
- Confirmation of bookings still in flight
- Carrier tracking sweep
"""

import logging
from datetime import datetime
from typing import List
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from freightbridge.core.config import settings
from freightbridge.db.session import SessionLocal
from freightbridge.services import booking_service, tracking_service, winner_selection

logger = logging.getLogger(__name__)


class SchedulerService:
    """
    Background job scheduler using APScheduler.
    Every job opens its own session and calls the same service functions
    the API uses.
    """

    def __init__(self):
        self.scheduler = BackgroundScheduler()
        self.jobs = {}

    def start(self):
        """Start the scheduler and register all jobs."""
        if self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting scheduler service...")

        self._register_selection_sweep_job()
        self._register_booking_confirmation_job()
        self._register_tracking_sweep_job()

        self.scheduler.start()
        logger.info(f"Scheduler started with {len(self.scheduler.get_jobs())} jobs")

    def stop(self):
        """Stop the scheduler."""
        if not self.scheduler.running:
            return

        logger.info("Stopping scheduler service...")
        self.scheduler.shutdown()
        logger.info("Scheduler stopped")

    def _register_selection_sweep_job(self):
        job = self.scheduler.add_job(
            func=self.run_selection_sweep,
            trigger=IntervalTrigger(minutes=settings.SELECTION_SWEEP_MINUTES),
            id="bidding_window_sweep",
            name="Bidding Window Sweep",
            replace_existing=True
        )
        self.jobs["selection_sweep"] = job
        logger.info(f"Registered job: bidding_window_sweep (every {settings.SELECTION_SWEEP_MINUTES} minutes)")

    def _register_booking_confirmation_job(self):
        job = self.scheduler.add_job(
            func=self.run_booking_confirmation,
            trigger=IntervalTrigger(minutes=settings.BOOKING_CONFIRM_MINUTES),
            id="booking_confirmation",
            name="Booking Confirmation",
            replace_existing=True
        )
        self.jobs["booking_confirmation"] = job
        logger.info(f"Registered job: booking_confirmation (every {settings.BOOKING_CONFIRM_MINUTES} minutes)")

    def _register_tracking_sweep_job(self):
        job = self.scheduler.add_job(
            func=self.run_tracking_sweep,
            trigger=IntervalTrigger(minutes=settings.TRACKING_SWEEP_MINUTES),
            id="carrier_tracking_sweep",
            name="Carrier Tracking Sweep",
            replace_existing=True
        )
        self.jobs["tracking_sweep"] = job
        logger.info(f"Registered job: carrier_tracking_sweep (every {settings.TRACKING_SWEEP_MINUTES} minutes)")

    def run_selection_sweep(self) -> int:
        """Fire selection for every request past its bidding window."""
        logger.info("Running bidding window sweep...")
        db = SessionLocal()
        try:
            outcomes = winner_selection.sweep_expired(db)
            logger.info(f"Bidding window sweep selected winners for {len(outcomes)} quotes")
            return len(outcomes)
        except Exception as e:
            logger.error(f"Error in bidding window sweep: {str(e)}")
            db.rollback()
            return 0
        finally:
            db.close()

    def run_booking_confirmation(self) -> int:
        """Push bookings from booking to booked."""
        logger.info("Running booking confirmation...")
        db = SessionLocal()
        try:
            confirmed = booking_service.confirm_pending_bookings(db)
            logger.info(f"Confirmed {confirmed} bookings")
            return confirmed
        except Exception as e:
            logger.error(f"Error in booking confirmation: {str(e)}")
            db.rollback()
            return 0
        finally:
            db.close()

    def run_tracking_sweep(self) -> dict:
        """Poll carriers for shipments between final BL and delivery."""
        logger.info("Running carrier tracking sweep...")
        db = SessionLocal()
        try:
            return tracking_service.run_tracking_sweep(db)
        except Exception as e:
            logger.error(f"Error in carrier tracking sweep: {str(e)}")
            db.rollback()
            return {"checked": 0, "updated": [], "failed": [{"error": str(e)}]}
        finally:
            db.close()

    def get_job_status(self) -> List[dict]:
        """Get status of all scheduled jobs."""
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
                "trigger": str(job.trigger)
            })
        return jobs

    def trigger_job(self, job_id: str):
        """Manually trigger a job."""
        job = self.scheduler.get_job(job_id)
        if job:
            job.modify(next_run_time=datetime.now())
            logger.info(f"Manually triggered job: {job_id}")
            return True
        return False


# Singleton instance
scheduler_service = SchedulerService()
