"""
Takeboard Background Job Scheduler

Runs the periodic grading jobs with APScheduler:
- pack winners: assign winners to graded packs that have none
- achievement sweep: award point milestones to profiles with takes on
  props graded since the previous sweep
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from takeboard import db
from takeboard.models import Prop
from takeboard.services.achievement_service import award_for_updated_props
from takeboard.services.grading_service import set_pack_winners

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages background grading and achievement jobs"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.last_sweep_at = None
        self.sweep_resume_after = None
        self.job_stats = {
            "last_run": None,
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "packs_updated": 0,
            "achievements_awarded": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        # Register shutdown
        atexit.register(self.shutdown)

        # Start scheduler if enabled
        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            # Clear any existing jobs
            self.scheduler.remove_all_jobs()

            self._add_core_jobs()

            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        """Add core scheduled jobs"""
        config = self.app.config

        self.scheduler.add_job(
            func=self._assign_pack_winners,
            trigger=IntervalTrigger(minutes=config.get("PACK_WINNER_INTERVAL_MINUTES", 15)),
            id="assign_pack_winners",
            name="Assign Pack Winners",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )

        self.scheduler.add_job(
            func=self._sweep_achievements,
            trigger=IntervalTrigger(
                minutes=config.get("ACHIEVEMENT_SWEEP_INTERVAL_MINUTES", 5)
            ),
            id="achievement_sweep",
            name="Points Milestone Sweep",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=120,
        )

        logger.info("Core scheduled jobs added")

    def _assign_pack_winners(self):
        """Set winners on graded packs that have none"""
        with self.app.app_context():
            try:
                result = set_pack_winners()

                for error in result["errors"]:
                    logger.warning(f"Pack winner job: {error}")
                if result["updated_count"] > 0:
                    logger.info(f"Pack winner job: {result['updated_count']} packs updated")

                self._update_stats(True, packs_updated=result["updated_count"])

            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.job_stats["last_error"] = str(e)
                logger.error(f"Error in pack winner job: {e}", exc_info=True)

    def _sweep_achievements(self):
        """Award milestones for props graded since the previous sweep"""
        with self.app.app_context():
            try:
                started_at = datetime.now(timezone.utc).replace(tzinfo=None)
                prop_ids = Prop.get_graded_since(self.last_sweep_at)

                if not prop_ids:
                    self.last_sweep_at = started_at
                    return  # Silent - nothing graded since the last sweep

                result = award_for_updated_props(
                    prop_ids,
                    timeout=self.app.config.get("AWARD_FANOUT_TIMEOUT"),
                    resume_after=self.sweep_resume_after,
                )
                awarded = sum(len(r.get("achievement_keys", [])) for r in result.results)

                for entry in result.errors:
                    logger.warning(
                        f"Achievement sweep: profile {entry['profile_ref']} failed: {entry['error']}"
                    )

                # A truncated sweep keeps its prop window and resumes after the
                # last profile it checked
                if result.truncated:
                    if result.last_profile_ref is not None:
                        self.sweep_resume_after = result.last_profile_ref
                else:
                    self.last_sweep_at = started_at
                    self.sweep_resume_after = None

                logger.info(
                    f"Achievement sweep: {len(prop_ids)} props, {awarded} achievements awarded"
                    f"{' (truncated)' if result.truncated else ''}"
                )
                self._update_stats(True, achievements_awarded=awarded)

            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.job_stats["last_error"] = str(e)
                logger.error(f"Error in achievement sweep: {e}", exc_info=True)

    def _update_stats(self, success, packs_updated=0, achievements_awarded=0):
        """Update job statistics"""
        self.job_stats["last_run"] = datetime.now(timezone.utc)
        self.job_stats["total_runs"] += 1

        if success:
            self.job_stats["successful_runs"] += 1
            self.job_stats["packs_updated"] += packs_updated
            self.job_stats["achievements_awarded"] += achievements_awarded
            self.job_stats["last_error"] = None
        else:
            self.job_stats["failed_runs"] += 1

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        return {
            "is_running": self.is_running,
            "jobs": jobs,
            "stats": self.job_stats,
            "last_sweep_at": self.last_sweep_at.isoformat() if self.last_sweep_at else None,
            "sweep_resume_after": self.sweep_resume_after,
        }

    def force_run(self, job_type="pack_winners"):
        """Manually trigger a job"""
        jobs = {
            "pack_winners": self._assign_pack_winners,
            "achievements": self._sweep_achievements,
        }
        if job_type not in jobs:
            return False, f"Unknown job type: {job_type}"

        failed_before = self.job_stats["failed_runs"]
        jobs[job_type]()
        if self.job_stats["failed_runs"] > failed_before:
            return False, f"Manual run failed: {self.job_stats['last_error']}"
        return True, f"Manual {job_type} run completed"


# Global scheduler instance
scheduler_service = SchedulerService()
