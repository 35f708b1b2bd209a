"""Narrow interface between the export pipeline and the live host page.

The pipeline never talks to Playwright directly. It asks a ``PageAdapter`` to
find elements by selector, read their text/attributes/bounds, and simulate
input. ``PlaywrightPageAdapter`` is the real implementation; tests use an
in-memory fake with a virtual clock.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, TypeVar

from playwright.sync_api import (  # type: ignore[import-not-found]
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
    ElementHandle,
    Page,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AdapterError(RuntimeError):
    """Raised when an interaction with the host page fails."""


@dataclass(frozen=True)
class Bounds:
    x: float
    y: float
    width: float
    height: float

    @property
    def is_rendered(self) -> bool:
        return self.width > 0 and self.height > 0

    def contains(self, x: float, y: float, margin: float = 0.0) -> bool:
        return (
            self.x - margin <= x <= self.x + self.width + margin
            and self.y - margin <= y <= self.y + self.height + margin
        )

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


class PageAdapter(Protocol):
    """Capabilities the pipeline needs from a rendered page.

    Element references are opaque; only the adapter that produced them may
    interpret them.
    """

    @property
    def url(self) -> str: ...

    def query_all(self, selector: str, scope: Any = None) -> List[Any]: ...

    def query(self, selector: str, scope: Any = None) -> Optional[Any]: ...

    def text(self, element: Any) -> str: ...

    def text_excluding(self, element: Any, selector: str) -> str: ...

    def attribute(self, element: Any, name: str) -> Optional[str]: ...

    def bounds(self, element: Any) -> Optional[Bounds]: ...

    def parent(self, element: Any) -> Optional[Any]: ...

    def activate(self, element: Any) -> None: ...

    def press_key(self, key: str) -> None: ...

    def click_at(self, element: Any, offset_x: float, offset_y: float) -> None: ...

    def scroll_into_view(self, element: Any) -> None: ...

    def wait(self, seconds: float) -> None: ...

    def clock(self) -> float: ...


def wait_until(
    predicate: Callable[[], Optional[T]],
    timeout: float,
    poll_interval: float,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Optional[T]:
    """Poll ``predicate`` until it returns a truthy value or ``timeout`` elapses.

    Returns the truthy value, or None on timeout. The predicate is always
    evaluated at least once.
    """

    deadline = clock() + timeout
    while True:
        result = predicate()
        if result:
            return result
        if clock() >= deadline:
            return None
        sleep(poll_interval)


class PlaywrightPageAdapter:
    """``PageAdapter`` backed by a Playwright ``Page``."""

    def __init__(self, page: Page, action_timeout: float = 2.0) -> None:
        self.page = page
        self.action_timeout = action_timeout

    @property
    def url(self) -> str:
        return self.page.url

    def query_all(self, selector: str, scope: Optional[ElementHandle] = None) -> List[ElementHandle]:
        root = scope if scope is not None else self.page
        try:
            return root.query_selector_all(selector)
        except PlaywrightError as exc:
            logger.debug("Selector %r failed: %s", selector, exc)
            return []

    def query(self, selector: str, scope: Optional[ElementHandle] = None) -> Optional[ElementHandle]:
        root = scope if scope is not None else self.page
        try:
            return root.query_selector(selector)
        except PlaywrightError as exc:
            logger.debug("Selector %r failed: %s", selector, exc)
            return None

    def text(self, element: ElementHandle) -> str:
        try:
            return element.text_content() or ""
        except PlaywrightError:
            return ""

    def text_excluding(self, element: ElementHandle, selector: str) -> str:
        try:
            text = element.evaluate(
                """
                (el, selector) => {
                    const clone = el.cloneNode(true);
                    clone.querySelectorAll(selector).forEach((node) => node.remove());
                    return clone.textContent || '';
                }
                """,
                selector,
            )
        except PlaywrightError:
            return ""
        return str(text or "")

    def attribute(self, element: ElementHandle, name: str) -> Optional[str]:
        try:
            return element.get_attribute(name)
        except PlaywrightError:
            return None

    def bounds(self, element: ElementHandle) -> Optional[Bounds]:
        try:
            box = element.bounding_box()
        except PlaywrightError:
            return None
        if not box:
            return None
        return Bounds(box["x"], box["y"], box["width"], box["height"])

    def parent(self, element: ElementHandle) -> Optional[ElementHandle]:
        try:
            handle = element.evaluate_handle("(el) => el.parentElement")
        except PlaywrightError:
            return None
        return handle.as_element()

    def activate(self, element: ElementHandle) -> None:
        # Script click skips actionability checks; forced click is the fallback.
        try:
            element.evaluate("(el) => el.click()")
            return
        except PlaywrightError:
            pass
        try:
            element.click(timeout=self.action_timeout * 1000, force=True)
        except PlaywrightError as exc:
            raise AdapterError(f"Could not activate element: {exc}") from exc

    def press_key(self, key: str) -> None:
        try:
            self.page.keyboard.press(key)
        except PlaywrightError as exc:
            raise AdapterError(f"Could not press {key}: {exc}") from exc

    def click_at(self, element: ElementHandle, offset_x: float, offset_y: float) -> None:
        try:
            element.evaluate(
                """
                (el, offset) => {
                    const rect = el.getBoundingClientRect();
                    el.dispatchEvent(new MouseEvent('click', {
                        bubbles: true,
                        cancelable: true,
                        clientX: rect.left + offset.x,
                        clientY: rect.top + offset.y,
                    }));
                }
                """,
                {"x": offset_x, "y": offset_y},
            )
        except PlaywrightError as exc:
            raise AdapterError(f"Could not click backdrop: {exc}") from exc

    def scroll_into_view(self, element: ElementHandle) -> None:
        try:
            element.scroll_into_view_if_needed(timeout=self.action_timeout * 1000)
        except PlaywrightTimeoutError:
            pass
        except PlaywrightError as exc:
            raise AdapterError(f"Could not scroll element into view: {exc}") from exc

    def wait(self, seconds: float) -> None:
        if seconds > 0:
            self.page.wait_for_timeout(int(seconds * 1000))

    def clock(self) -> float:
        return time.monotonic()


def sanitize_slug(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", value.strip())
    return cleaned.strip("._-") or "page"


def save_debug_artifacts(page: Page, debug_dir: Path, slug: str, reason: str) -> None:
    """Write a screenshot and the page HTML so failed candidates can be inspected."""

    debug_dir.mkdir(parents=True, exist_ok=True)
    stem = f"{sanitize_slug(slug)[:60]}_{sanitize_slug(reason)[:40]}"
    screenshot = debug_dir / f"{stem}.png"
    html_path = debug_dir / f"{stem}.html"
    try:
        page.screenshot(path=str(screenshot), full_page=True)
    except PlaywrightError as exc:
        logger.debug("Screenshot failed for %s: %s", stem, exc)
    try:
        html_path.write_text(page.content(), encoding="utf-8")
    except (PlaywrightError, OSError) as exc:
        logger.debug("HTML dump failed for %s: %s", stem, exc)
