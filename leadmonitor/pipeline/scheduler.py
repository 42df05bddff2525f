"""
Monitoring scheduler — drives search → dedup → store → score → publish cycles.

One cycle walks every configured subreddit × keyword pair strictly in order:

    search (Reddit) → drop ids already stored → insert_many → score each new
    post → record_analysis → publish NEW_LEAD if score ≥ min_score

Cycles start from the cron timer or a manual trigger. Both paths go through
the same check-and-set on the cycle state, so at most one cycle runs at a
time; a trigger that loses the race is logged and dropped, never queued.

The scheduler is the error boundary for cycle work: a failing keyword or post
is logged and skipped, an unexpected error ends the cycle, and the state is
always back to IDLE afterwards.
"""
import enum
import logging
import threading
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from leadmonitor.config import KEYWORD_DELAY, PARTITION_DELAY
from leadmonitor.errors import InvalidArgument, StorageFailure, UpstreamUnavailable
from leadmonitor.models.types import QualifyingLeadEvent
from leadmonitor.pipeline.monitor_config import MonitoringConfig

logger = logging.getLogger('pipeline.scheduler')

JOB_ID = 'reddit-monitor-cycle'


class CycleState(str, enum.Enum):
    IDLE = 'idle'
    RUNNING = 'running'


@dataclass
class CycleReport:
    """Counters for one finished cycle, exposed through the status endpoint."""
    trigger: str
    started_at: str
    finished_at: Optional[str] = None
    duration_seconds: float = 0.0
    searches: int = 0
    search_errors: int = 0
    posts_found: int = 0
    new_posts: int = 0
    analyzed: int = 0
    qualifying: int = 0
    error: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def parse_crontab(expression: str) -> CronTrigger:
    try:
        return CronTrigger.from_crontab(expression)
    except ValueError as e:
        raise InvalidArgument(f"Invalid cron expression {expression!r}: {e}") from e


class MonitoringScheduler:
    """
    Owns the cycle state and the live MonitoringConfig.

    Collaborators are injected: `source` (RedditClient), `scorer`
    (ScoringClient), `store` (LeadStore) and `publish`, a callable taking a
    QualifyingLeadEvent (usually LeadEventBroker.publish).
    """

    def __init__(self, source, scorer, store, publish: Callable[[QualifyingLeadEvent], object],
                 config: MonitoringConfig,
                 keyword_delay: float = KEYWORD_DELAY,
                 partition_delay: float = PARTITION_DELAY,
                 sleep: Callable[[float], None] = time.sleep):
        self.source = source
        self.scorer = scorer
        self.store = store
        self.publish = publish
        self.config = config
        self.keyword_delay = keyword_delay
        self.partition_delay = partition_delay
        self._sleep = sleep

        self._state = CycleState.IDLE
        self._state_lock = threading.Lock()
        self._timer: Optional[BackgroundScheduler] = None
        self._worker: Optional[threading.Thread] = None
        self.last_cycle: Optional[CycleReport] = None

    # ── Cycle state ───────────────────────────────────────────────────

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def cycle_running(self) -> bool:
        return self._state is CycleState.RUNNING

    def _try_begin(self) -> bool:
        """Atomically move IDLE → RUNNING. False if a cycle is already in flight."""
        with self._state_lock:
            if self._state is CycleState.RUNNING:
                return False
            self._state = CycleState.RUNNING
            return True

    def _finish(self):
        with self._state_lock:
            self._state = CycleState.IDLE

    # ── Entry points ──────────────────────────────────────────────────

    def run_cycle(self, trigger: str = 'manual') -> Optional[CycleReport]:
        """Run one cycle in the calling thread. None if another cycle is running."""
        if not self._try_begin():
            logger.info("Search already running, skipping %s trigger", trigger)
            return None
        return self._execute(trigger)

    def trigger(self, source: str = 'manual') -> bool:
        """
        Fire-and-forget cycle in a background thread.

        Returns True if a cycle was started, False if one was already running.
        """
        if not self._try_begin():
            logger.info("Search already running, skipping %s trigger", source)
            return False
        self._worker = threading.Thread(
            target=self._execute, args=(source,), name=f'monitor-{source}', daemon=True,
        )
        self._worker.start()
        return True

    def join(self, timeout: Optional[float] = None):
        """Wait for the most recent background cycle to finish."""
        if self._worker is not None:
            self._worker.join(timeout)

    # ── Cycle body ────────────────────────────────────────────────────

    def _execute(self, trigger: str) -> CycleReport:
        config = self.config
        report = CycleReport(trigger=trigger, started_at=datetime.now(timezone.utc).isoformat())
        started = time.monotonic()
        logger.info(
            "Starting %s search: %d keywords × %d subreddits",
            trigger, len(config.keywords), len(config.partitions),
        )
        try:
            for p_idx, partition in enumerate(config.partitions):
                if p_idx:
                    self._sleep(self.partition_delay)
                logger.info("Searching r/%s", partition)
                for k_idx, keyword in enumerate(config.keywords):
                    if k_idx:
                        self._sleep(self.keyword_delay)
                    self._process_keyword(partition, keyword, config, report)

            stats = self.store.stats()
            logger.info(
                "Search complete: %d new posts, %d analyzed, %d qualifying leads (db: %d total, %d analyzed)",
                report.new_posts, report.analyzed, report.qualifying, stats['total'], stats['analyzed'],
            )
        except Exception as e:
            report.error = str(e)
            logger.error("Monitoring cycle aborted: %s", e, exc_info=True)
        finally:
            report.finished_at = datetime.now(timezone.utc).isoformat()
            report.duration_seconds = round(time.monotonic() - started, 2)
            self.last_cycle = report
            self._finish()
        return report

    def _process_keyword(self, partition: str, keyword: str, config: MonitoringConfig, report: CycleReport):
        try:
            page = self.source.search(
                keyword, partition=partition, sort='new', time_window='day', limit=config.limit,
            )
        except (UpstreamUnavailable, InvalidArgument) as e:
            report.search_errors += 1
            logger.error("Error searching %r in r/%s: %s", keyword, partition, e)
            return

        report.searches += 1
        report.posts_found += len(page.items)
        if not page.items:
            logger.info("No posts found for %r in r/%s", keyword, partition)
            return

        try:
            new_items = [item for item in page.items if not self.store.exists(item.id)]
            if not new_items:
                logger.info("All %d posts for %r already in database", len(page.items), keyword)
                return
            report.new_posts += self.store.insert_many(new_items, keyword)
        except StorageFailure as e:
            logger.error("Could not save posts for %r in r/%s: %s", keyword, partition, e)
            return
        logger.info("%d new posts for %r to analyze", len(new_items), keyword)

        if not self.scorer.enabled:
            logger.warning("AI analysis disabled - skipping analysis")
            return

        for idx, item in enumerate(new_items, 1):
            logger.debug("Analyzing post %d/%d (%s)", idx, len(new_items), item.id)
            result = self.scorer.score(item)
            try:
                self.store.record_analysis(item.id, result)
            except StorageFailure as e:
                logger.error("Could not save analysis for post %s: %s", item.id, e)
                continue
            report.analyzed += 1

            if result.score >= config.min_score:
                report.qualifying += 1
                logger.info("Good lead found: %s (score %d)", item.id, result.score)
                self.publish(QualifyingLeadEvent(item=item, analysis=result))

    # ── Timer ─────────────────────────────────────────────────────────

    def start(self, run_immediately: bool = True):
        """Start the cron timer; optionally kick off a first cycle right away."""
        if self._timer is not None:
            return
        self._timer = BackgroundScheduler(daemon=True)
        self._timer.add_job(
            self.run_cycle,
            trigger=parse_crontab(self.config.interval),
            id=JOB_ID,
            kwargs={'trigger': 'scheduled'},
            max_instances=1,
            coalesce=True,
        )
        self._timer.start()
        logger.info(
            "Monitoring started (schedule=%s, subreddits=%s, keywords=%s)",
            self.config.interval, ', '.join(self.config.partitions), ', '.join(self.config.keywords),
        )
        if run_immediately:
            self.trigger('startup')

    def stop(self):
        """Stop the timer. An in-flight cycle is left to finish on its own."""
        if self._timer is None:
            return
        self._timer.shutdown(wait=False)
        self._timer = None
        logger.info("Monitoring service stopped")

    @property
    def next_run_at(self) -> Optional[str]:
        if self._timer is None:
            return None
        job = self._timer.get_job(JOB_ID)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()

    # ── Config + status ───────────────────────────────────────────────

    def update_config(self, **changes) -> MonitoringConfig:
        """Merge partial changes into the live config (not persisted)."""
        new_config = self.config.merged(**changes)
        if new_config.interval != self.config.interval:
            cron = parse_crontab(new_config.interval)
            if self._timer is not None:
                self._timer.reschedule_job(JOB_ID, trigger=cron)
                logger.info("Schedule changed to %s", new_config.interval)
        self.config = new_config
        logger.info("Configuration updated: %s", sorted(k for k, v in changes.items() if v is not None))
        return new_config

    def status(self) -> dict:
        return {
            'cycle_running': self.cycle_running,
            'config': self.config.to_dict(),
            'stats': self.store.stats(),
            'scoring_enabled': self.scorer.enabled,
            'last_cycle': self.last_cycle.to_dict() if self.last_cycle else None,
            'next_run_at': self.next_run_at,
        }
