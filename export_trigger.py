"""Toolkit-independent export button behaviour.

``ExportTrigger`` holds no export state of its own. It rejects re-entrant
activation, projects the run's status messages onto a label, reports fatal
errors, and puts the idle label back a few seconds after the run ends. The GUI
supplies the callbacks that touch real widgets.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from export_pipeline import NO_FILES_MESSAGE, ExportError, ExportRun, StatusCallback

logger = logging.getLogger(__name__)

IDLE_LABEL = "Export Project Files"
NO_FILES_HINT = (
    "No project files found.\n\n"
    "Make sure you are on a project page with knowledge files.\n\n"
    "Try scrolling through the project files list first to ensure they are loaded."
)

ExportTask = Callable[[StatusCallback], ExportRun]


class ExportTrigger:
    def __init__(
        self,
        set_label: Callable[[str], None],
        set_enabled: Callable[[bool], None],
        schedule: Callable[[float, Callable[[], None]], None],
        notify: Callable[[str, str], None],
        idle_label: str = IDLE_LABEL,
        revert_delay: float = 3.0,
    ) -> None:
        self.set_label = set_label
        self.set_enabled = set_enabled
        self.schedule = schedule
        self.notify = notify
        self.idle_label = idle_label
        self.revert_delay = revert_delay
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def show_status(self, message: str) -> None:
        if self.is_running:
            self.set_label(message)

    def reset_label(self) -> None:
        if not self.is_running:
            self.set_label(self.idle_label)

    def activate(self, task: ExportTask) -> Optional[ExportRun]:
        """Run ``task`` unless a run is already in progress.

        Returns the finished run, or None when the activation was rejected or
        the run failed.
        """

        if not self._lock.acquire(blocking=False):
            logger.info("Export already running, ignoring activation")
            return None

        run: Optional[ExportRun] = None
        self.set_enabled(False)
        self.set_label("Scanning...")
        try:
            run = task(self.show_status)
            if run.status == NO_FILES_MESSAGE:
                self.notify("No files found", NO_FILES_HINT)
        except ExportError as exc:
            logger.error("Export failed: %s", exc)
            self.set_label("Export failed!")
            self.notify("Export failed", str(exc))
        except Exception as exc:  # noqa: BLE001 - the worker thread has no other reporter
            logger.exception("Export crashed")
            self.set_label("Export failed!")
            self.notify("Export failed", f"Unexpected error: {exc}")
        finally:
            self._lock.release()
            self.set_enabled(True)
            self.schedule(self.revert_delay, self.reset_label)
        return run
