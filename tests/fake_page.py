"""In-memory stand-in for a rendered host page.

Nodes answer to the selector strings listed in ``FakeNode.selectors`` (exact
string match, the same strings the extraction rules use). Time is virtual:
``wait`` advances the clock and fires scheduled events, so dialogs can appear
or disappear "later" without real sleeping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from extraction_rules import ExtractionRules
from page_adapter import AdapterError, Bounds

VISIBLE = Bounds(10, 10, 200, 40)


@dataclass(eq=False)
class FakeNode:
    text: str = ""
    selectors: Set[str] = field(default_factory=set)
    bounds: Optional[Bounds] = VISIBLE
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List["FakeNode"] = field(default_factory=list)
    parent: Optional["FakeNode"] = None
    on_activate: Optional[Callable[["FakePage"], None]] = None
    attached: bool = True
    fail_on_activate: bool = False

    def add(self, *children: "FakeNode") -> "FakeNode":
        for child in children:
            child.parent = self
            self.children.append(child)
        return self

    def descendants(self) -> List["FakeNode"]:
        found: List[FakeNode] = []
        for child in self.children:
            found.append(child)
            found.extend(child.descendants())
        return found

    def full_text(self, excluding: Optional[str] = None) -> str:
        parts = [self.text]
        for child in self.children:
            if excluding is not None and excluding in child.selectors:
                continue
            parts.append(child.full_text(excluding))
        return "".join(parts)


class FakePage:
    def __init__(self, url: str = "https://claude.ai/project/demo-project") -> None:
        self.url = url
        self.root = FakeNode(bounds=Bounds(0, 0, 1280, 800))
        self.now = 0.0
        self.events: List[Tuple[float, Callable[[], None]]] = []
        self.activations: List[FakeNode] = []
        self.keys: List[str] = []
        self.backdrop_clicks: List[FakeNode] = []
        self.scrolled: List[FakeNode] = []
        self.on_key: Optional[Callable[[str], None]] = None

    # ------------------------------------------------------------------ fixture helpers
    def add(self, *nodes: FakeNode) -> FakePage:
        self.root.add(*nodes)
        return self

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self.events.append((self.now + delay, callback))

    def _nodes(self, scope: Optional[FakeNode]) -> List[FakeNode]:
        base = scope if scope is not None else self.root
        return [node for node in base.descendants() if self._is_attached(node)]

    def _is_attached(self, node: FakeNode) -> bool:
        while node is not None:
            if not node.attached:
                return False
            node = node.parent
        return True

    # ------------------------------------------------------------------ PageAdapter
    def query_all(self, selector: str, scope: Optional[FakeNode] = None) -> List[FakeNode]:
        return [node for node in self._nodes(scope) if selector in node.selectors]

    def query(self, selector: str, scope: Optional[FakeNode] = None) -> Optional[FakeNode]:
        matches = self.query_all(selector, scope)
        return matches[0] if matches else None

    def text(self, element: FakeNode) -> str:
        return element.full_text()

    def text_excluding(self, element: FakeNode, selector: str) -> str:
        return element.full_text(excluding=selector)

    def attribute(self, element: FakeNode, name: str) -> Optional[str]:
        return element.attributes.get(name)

    def bounds(self, element: FakeNode) -> Optional[Bounds]:
        if not self._is_attached(element):
            return None
        return element.bounds

    def parent(self, element: FakeNode) -> Optional[FakeNode]:
        return element.parent

    def activate(self, element: FakeNode) -> None:
        if element.fail_on_activate:
            raise AdapterError("element detached")
        self.activations.append(element)
        if element.on_activate is not None:
            element.on_activate(self)

    def press_key(self, key: str) -> None:
        self.keys.append(key)
        if self.on_key is not None:
            self.on_key(key)

    def click_at(self, element: FakeNode, offset_x: float, offset_y: float) -> None:
        self.backdrop_clicks.append(element)
        if element.on_activate is not None:
            element.on_activate(self)

    def scroll_into_view(self, element: FakeNode) -> None:
        self.scrolled.append(element)

    def wait(self, seconds: float) -> None:
        self.now += seconds
        due = [event for event in self.events if event[0] <= self.now + 1e-9]
        self.events = [event for event in self.events if event[0] > self.now + 1e-9]
        for _, callback in sorted(due, key=lambda event: event[0]):
            callback()

    def clock(self) -> float:
        return self.now


RULES = ExtractionRules()


def file_entry(text: str, **kwargs) -> FakeNode:
    """An activatable file row like the ones in the project knowledge panel."""

    return FakeNode(text=text, selectors={RULES.activatable_selector}, **kwargs)


class FakeDialog:
    """The page's single detail dialog, opening after a delay on ``show``.

    ``closes_on`` lists the strategies that dismiss it: ``"button"``,
    ``"escape"`` and/or ``"backdrop"``.
    """

    def __init__(
        self,
        page: FakePage,
        open_delay: float = 0.3,
        closes_on: Tuple[str, ...] = ("button",),
        content_selector: str = "pre",
    ) -> None:
        self.page = page
        self.open_delay = open_delay
        self.closes_on = closes_on
        self.open_count = 0
        self.close_count = 0

        self.backdrop = FakeNode(
            selectors={RULES.backdrop_selectors[1]},
            bounds=Bounds(0, 0, 1280, 800),
            attached=False,
            on_activate=lambda _page: self._dismiss("backdrop"),
        )
        self.node = FakeNode(
            selectors={RULES.dialog_selector},
            bounds=Bounds(300, 100, 600, 500),
        )
        self.close_button = FakeNode(
            selectors={RULES.close_selectors[0]},
            bounds=Bounds(860, 110, 24, 24),
            on_activate=lambda _page: self._dismiss("button"),
        )
        self.body = FakeNode(selectors={content_selector})
        header = FakeNode(text="Header", selectors={RULES.chrome_selector})
        self.node.add(header, self.body, self.close_button)
        self.backdrop.add(self.node)
        page.add(self.backdrop)
        page.on_key = self._on_key

    @property
    def is_open(self) -> bool:
        return self.backdrop.attached

    def opener(self, content: str, never_renders: bool = False) -> Callable[[FakePage], None]:
        """An ``on_activate`` callback that shows ``content`` in the dialog."""

        def show(page: FakePage) -> None:
            if never_renders:
                return

            def render() -> None:
                self.body.text = content
                self.backdrop.attached = True
                self.open_count += 1

            page.schedule(self.open_delay, render)

        return show

    def _dismiss(self, how: str) -> None:
        if how in self.closes_on and self.backdrop.attached:
            self.page.schedule(0.1, self._detach)

    def _detach(self) -> None:
        self.backdrop.attached = False
        self.close_count += 1

    def _on_key(self, key: str) -> None:
        if key == "Escape":
            self._dismiss("escape")
