"""The polling loop.

One Monitor owns one loop thread at a time.  Each cycle re-reads the live
configuration, walks every storefront in order, diffs each product against
the in-memory state, notifies, and finally persists the state.  start/stop/
restart and status are safe to call from any thread.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from . import config, db, diff, notifier, scraper
from .events import broadcast_log
from .utils import get_http_session

logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class CycleReport:
    sites: int = 0
    products: int = 0
    new: int = 0
    updated: int = 0
    notified: int = 0
    completed: bool = False


class Monitor:
    def __init__(
        self,
        *,
        config_loader: Optional[Callable[[], config.MonitorConfig]] = None,
        state_path: Optional[str] = None,
        restart_delay: float = config.RESTART_DELAY_SECONDS,
        error_backoff: float = config.ERROR_BACKOFF_SECONDS,
        http_timeout: float = config.HTTP_TIMEOUT_SECONDS,
    ):
        self._load_config = config_loader or config.load_config
        self._state_path = state_path
        self._restart_delay = restart_delay
        self._error_backoff = error_backoff
        self._http_timeout = http_timeout

        self._lock = threading.Lock()
        self._status = RunState.IDLE
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.state: Optional[db.State] = None

    # ---- lifecycle -----------------------------------------------------------

    @property
    def status(self) -> RunState:
        with self._lock:
            return self._status

    def start(self) -> bool:
        with self._lock:
            if self._status is RunState.RUNNING:
                broadcast_log("Monitor is already running", "warning")
                return False
            previous = self._thread

        # A stopping loop finishes its current product before we replace it.
        if previous is not None and previous is not threading.current_thread():
            previous.join()

        with self._lock:
            if self._status is RunState.RUNNING:
                broadcast_log("Monitor is already running", "warning")
                return False
            self._stop_event = threading.Event()
            self._status = RunState.RUNNING
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="monitor-loop", daemon=True
            )
            self._thread.start()
        return True

    def stop(self) -> bool:
        with self._lock:
            if self._status is not RunState.RUNNING:
                return False
            self._status = RunState.STOPPING
            self._stop_event.set()
        broadcast_log("Stopping monitor...", "info")
        return True

    def restart(self) -> threading.Timer:
        self.stop()
        timer = threading.Timer(self._restart_delay, self.start)
        timer.daemon = True
        timer.start()
        return timer

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    # ---- loop ----------------------------------------------------------------

    def _run(self, stop_event: threading.Event) -> None:
        broadcast_log("Starting storefront monitor", "info")
        try:
            self.state = db.load_state(self._state_path)
            first_run = True
            while not stop_event.is_set():
                try:
                    cfg = self._load_config()
                    if first_run:
                        broadcast_log(
                            f"Monitoring {len(cfg.sites)} sites. Interval: {cfg.delay_ms}ms", "info"
                        )
                        first_run = False

                    report = self.run_cycle(cfg, stop_event)
                    logger.info(
                        "Cycle done: %d sites, %d products, %d new, %d updated, %d notified",
                        report.sites, report.products, report.new, report.updated, report.notified,
                    )

                    # pick up interval edits made during the cycle
                    stop_event.wait(self._load_config().delay_seconds)
                except Exception as e:
                    logger.exception("Unexpected error during monitor cycle.")
                    broadcast_log(f"Monitor error: {e}", "error")
                    stop_event.wait(self._error_backoff)
        finally:
            with self._lock:
                if self._stop_event is stop_event:
                    self._status = RunState.IDLE
            broadcast_log("Monitor stopped", "info")

    def run_cycle(
        self,
        cfg: Optional[config.MonitorConfig] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> CycleReport:
        """Perform one fetch-diff-notify pass over every configured storefront.

        The state gathered so far is persisted even when a stop interrupts
        the pass; storage errors propagate to the caller.
        """
        if cfg is None:
            cfg = self._load_config()
        if stop_event is None:
            stop_event = threading.Event()
        if self.state is None:
            self.state = db.load_state(self._state_path)

        report = CycleReport()
        session = get_http_session(cfg.user_agent)
        try:
            for site in cfg.sites:
                if stop_event.is_set():
                    break
                self._check_site(site, cfg, session, stop_event, report)
                report.sites += 1
            else:
                report.completed = not stop_event.is_set()
        finally:
            session.close()

        db.save_state(self.state, self._state_path)
        return report

    def _check_site(
        self,
        site: str,
        cfg: config.MonitorConfig,
        session,
        stop_event: threading.Event,
        report: CycleReport,
    ) -> None:
        site_state = self.state.setdefault(site, {})
        cold_start = len(site_state) == 0

        broadcast_log(f"Checking {site}...", "info")
        try:
            products = scraper.fetch_products(
                site, cfg.user_agent, session=session, timeout=self._http_timeout
            )
        except Exception as e:
            logger.exception("Unexpected error fetching %s", site)
            broadcast_log(f"Error fetching {site}: {e}", "error")
            return

        for p in products:
            if stop_event.is_set():
                return
            report.products += 1
            pid = str(p.id)
            result = diff.diff_product(p, site_state.get(pid))

            if result.is_new:
                report.new += 1
                broadcast_log(f"New Product: {p.title}", "success")
                if not cold_start:
                    self._notify(p, site, cfg, notifier.EVENT_NEW, None, report)
            elif result.has_changes:
                report.updated += 1
                broadcast_log(f"Update: {p.title} - {', '.join(result.changes)}", "success")
                self._notify(p, site, cfg, notifier.EVENT_UPDATE, "\n".join(result.changes), report)
            else:
                continue

            # recorded even when delivery was suppressed or failed
            site_state[pid] = diff.snapshot_from_product(p)

    def _notify(
        self,
        product: scraper.Product,
        site: str,
        cfg: config.MonitorConfig,
        event_type: str,
        changes: Optional[str],
        report: CycleReport,
    ) -> None:
        sent = notifier.send_product_event(
            product,
            site,
            cfg.webhook_url,
            event_type,
            changes,
            timeout=self._http_timeout,
        )
        if sent:
            report.notified += 1


__all__ = ["RunState", "CycleReport", "Monitor"]
