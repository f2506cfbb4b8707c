import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from hll_observer.services.update_cycle import UpdateCycle


logger = logging.getLogger(__name__)


class CycleScheduler:
    def __init__(self, cycle: UpdateCycle, interval_ms: int, *, refresh_minutes: int = 0, timezone: str = "UTC"):
        self.cycle = cycle
        self.interval_ms = interval_ms
        self.refresh_minutes = refresh_minutes
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self.jobs = []

    def start(self):
        # Overlap is allowed here so that UpdateCycle's own guard decides to skip.
        j = self.scheduler.add_job(
            self.cycle.run_cycle_if_idle,
            "interval",
            seconds=self.interval_ms / 1000,
            id="update_cycle",
            max_instances=2,
            coalesce=True,
        )
        self.jobs.append(j)
        if self.refresh_minutes and self.refresh_minutes > 0:
            j = self.scheduler.add_job(
                self.cycle.refresh_servers,
                "interval",
                minutes=self.refresh_minutes,
                id="refresh_servers",
            )
            self.jobs.append(j)
        self.scheduler.start()
        logger.info("Update cycle scheduled every %.1fs", self.interval_ms / 1000)

    def shutdown(self):
        for j in list(self.jobs):
            try:
                self.scheduler.remove_job(j.id)
            except Exception:
                pass
        self.jobs.clear()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
