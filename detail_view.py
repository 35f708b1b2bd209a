"""Open, wait for, and dismiss the host UI's file detail dialog.

The host UI emits no event when its dialog finishes opening or closing, so
every transition is synchronised by polling with a bounded timeout::

    CLOSED -> OPENING -> OPEN -> CLOSING -> CLOSED
                 |                   |
                 +----> FAILED <-----+   (FAILED from CLOSING settles to CLOSED)
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Iterable, List, Optional

from extraction_rules import ExtractionRules
from file_locator import CandidateHandle
from page_adapter import AdapterError, PageAdapter, wait_until

logger = logging.getLogger(__name__)


class ViewState(enum.Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    FAILED = "failed"


class InvalidTransition(RuntimeError):
    """Raised when the controller is asked for a transition its state forbids."""


class DetailViewController:
    """Drive one detail dialog at a time through its open/close lifecycle."""

    def __init__(self, adapter: PageAdapter, rules: Optional[ExtractionRules] = None) -> None:
        self.adapter = adapter
        self.rules = rules or ExtractionRules()
        self.state = ViewState.CLOSED
        self.history: List[ViewState] = [ViewState.CLOSED]
        self.view: Any = None

    def _transition(self, state: ViewState) -> None:
        self.state = state
        self.history.append(state)

    def _wait_for(self, predicate: Callable[[], Any], timeout: float) -> Any:
        return wait_until(
            predicate,
            timeout,
            self.rules.poll_interval,
            sleep=self.adapter.wait,
            clock=self.adapter.clock,
        )

    # ------------------------------------------------------------------ probes
    def visible_view(self) -> Any:
        """Return the dialog element if one is rendered with non-zero height."""

        dialog = self.adapter.query(self.rules.dialog_selector)
        if dialog is None:
            return None
        box = self.adapter.bounds(dialog)
        if box is None or box.height <= 0:
            return None
        return dialog

    def is_closed(self) -> bool:
        return self.visible_view() is None

    def _fresh_view(self, stale_text: Optional[str]) -> Callable[[], Any]:
        """Probe for a view opened by the current activation.

        A view left over from a failed close only counts once it has
        disappeared and come back, or its text has changed.
        """

        if stale_text is None:
            return self.visible_view
        vanished = False

        def probe() -> Any:
            nonlocal vanished
            view = self.visible_view()
            if view is None:
                vanished = True
                return None
            if vanished or self.adapter.text(view) != stale_text:
                return view
            return None

        return probe

    # ------------------------------------------------------------------ opening
    def open(self, candidate: CandidateHandle) -> Any:
        """Activate ``candidate`` and return its dialog, or None on timeout."""

        if self.state not in (ViewState.CLOSED, ViewState.FAILED):
            raise InvalidTransition(f"Cannot open a detail view while {self.state.value}")

        stale = self.visible_view()
        stale_text = self.adapter.text(stale) if stale is not None else None
        if stale is not None:
            logger.debug("A detail view is still visible before opening %r", candidate.label[:60])

        self._transition(ViewState.OPENING)
        self.adapter.activate(candidate.element)

        view = self._wait_for(self._fresh_view(stale_text), self.rules.open_timeout)
        if view is None:
            logger.info("No detail view appeared for %r", candidate.label[:60])
            self.view = None
            self._transition(ViewState.FAILED)
            return None

        self.adapter.wait(self.rules.open_settle_delay)
        self.view = view
        self._transition(ViewState.OPEN)
        return view

    # ------------------------------------------------------------------ closing
    def close(self) -> bool:
        """Dismiss the dialog. Always ends CLOSED; returns False if it lingered."""

        self._transition(ViewState.CLOSING)
        strategies = (
            ("dismiss control", self._close_with_control),
            ("escape key", self._close_with_key),
            ("backdrop", self._close_with_backdrop),
        )
        closed = False
        for name, strategy in strategies:
            try:
                closed = strategy()
            except AdapterError as exc:
                logger.debug("Close via %s raised: %s", name, exc)
                closed = False
            if closed:
                logger.debug("Detail view closed via %s", name)
                break

        self.view = None
        if not closed:
            logger.warning("Failed to close detail view, continuing")
            self._transition(ViewState.FAILED)
        self._transition(ViewState.CLOSED)
        return closed

    def _await_closed(self, timeout: float) -> bool:
        return bool(self._wait_for(self.is_closed, timeout))

    def _dismiss_controls(self) -> Iterable[Any]:
        dialog = self.adapter.query(self.rules.dialog_selector)
        dialog_box = self.adapter.bounds(dialog) if dialog is not None else None
        limit = self.rules.close_control_max_size

        for selector in self.rules.close_selectors:
            for control in self.adapter.query_all(selector):
                box = self.adapter.bounds(control)
                if box is None or box.width >= limit or box.height >= limit:
                    continue
                if dialog_box is not None and not dialog_box.contains(
                    *box.center, margin=self.rules.close_control_margin
                ):
                    continue
                yield control

    def _close_with_control(self) -> bool:
        if self.is_closed():
            return True
        for control in self._dismiss_controls():
            try:
                self.adapter.activate(control)
            except AdapterError as exc:
                logger.debug("Dismiss control click failed: %s", exc)
                continue
            self.adapter.wait(self.rules.close_click_delay)
            if self._await_closed(self.rules.close_button_timeout):
                return True
        return False

    def _close_with_key(self) -> bool:
        for _ in range(self.rules.close_key_attempts):
            self.adapter.press_key("Escape")
            self.adapter.wait(self.rules.close_key_delay)
            if self._await_closed(self.rules.close_key_timeout):
                return True
        return False

    def _close_with_backdrop(self) -> bool:
        backdrop = None
        for selector in self.rules.backdrop_selectors:
            backdrop = self.adapter.query(selector)
            if backdrop is not None:
                break
        if backdrop is None:
            dialog = self.adapter.query(self.rules.dialog_selector)
            if dialog is not None:
                backdrop = self.adapter.parent(dialog)
        if backdrop is not None:
            self.adapter.click_at(backdrop, 5, 5)
            self.adapter.wait(self.rules.close_click_delay)
        return self._await_closed(self.rules.close_timeout)
