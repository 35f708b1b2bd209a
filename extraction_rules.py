"""Selectors, thresholds and timings used by the project files exporter.

Everything tuned against the host UI lives here so it can be reviewed and
adjusted without touching the pipeline. Defaults can be overridden from a JSON
file whose keys are ``ExtractionRules`` field names, for example::

    {"open_timeout": 10, "denylist": ["new chat", "settings"]}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple

ACTIVATABLE_SELECTOR = (
    "button, [role='button'], [class*='cursor-pointer'], div[tabindex='0']"
)
FILE_CONTAINER_SELECTOR = (
    "[class*='knowledge'], [class*='files'], [class*='documents'], [class*='project']"
)
LIST_ITEM_SELECTOR = "li, [role='listitem'], :scope > div > div"
DIALOG_SELECTOR = "[role='dialog']"
FILENAME_LABEL_SELECTOR = "[class*='filename'], [class*='name'], [title]"
CHROME_SELECTOR = "button, [role='button'], header, footer, nav"

DEFAULT_DENYLIST = (
    "new chat",
    "settings",
    "help",
    "log out",
    "sign in",
    "export",
    "download",
    "close",
    "cancel",
    "ok",
    "edit",
    "view",
    "delete",
    "copy",
    "share",
)
DEFAULT_FILE_PATTERNS = (
    r"\d+\s*lines?",
    r"\.[a-zA-Z0-9]{1,5}(\s|$)",
    r"\d+\s*(KB|MB|bytes?)",
)
DEFAULT_CLOSE_SELECTORS = (
    "button[aria-label*='close' i]",
    "[data-testid*='close']",
    "[role='dialog'] button[type='button']",
    "[role='dialog'] svg[class*='close']",
    "[role='dialog'] button:has(svg)",
)
DEFAULT_BACKDROP_SELECTORS = (
    "[data-state='open'][data-aria-hidden='true']",
    ".fixed.inset-0",
)
DEFAULT_CONTENT_SELECTORS = (
    "pre code",
    "pre",
    "[class*='whitespace-pre']",
    "[class*='font-mono']",
    "[class*='code']",
    "[class*='content']:not([class*='dialog'])",
    ".overflow-auto",
    ".overflow-y-auto",
)
DEFAULT_TITLE_SELECTORS = (
    "[data-testid='project-title']",
    "[class*='project'] h1",
    "[class*='project'] h2",
    "h1",
    ".text-xl",
    ".text-2xl",
)
DEFAULT_IGNORED_TITLES = ("Claude",)
DEFAULT_PROJECT_TITLE = "Claude_Project"
BINARY_DOCUMENT_EXTENSIONS = ("pdf", "doc", "docx", "xlsx", "xls", "ppt", "pptx")


@dataclass(frozen=True)
class ExtractionRules:
    """Configuration table for one export run. Durations are in seconds."""

    activatable_selector: str = ACTIVATABLE_SELECTOR
    file_container_selector: str = FILE_CONTAINER_SELECTOR
    list_item_selector: str = LIST_ITEM_SELECTOR
    dialog_selector: str = DIALOG_SELECTOR
    filename_label_selector: str = FILENAME_LABEL_SELECTOR
    chrome_selector: str = CHROME_SELECTOR
    close_selectors: Tuple[str, ...] = DEFAULT_CLOSE_SELECTORS
    backdrop_selectors: Tuple[str, ...] = DEFAULT_BACKDROP_SELECTORS
    content_selectors: Tuple[str, ...] = DEFAULT_CONTENT_SELECTORS
    title_selectors: Tuple[str, ...] = DEFAULT_TITLE_SELECTORS
    denylist: Tuple[str, ...] = DEFAULT_DENYLIST
    file_patterns: Tuple[str, ...] = DEFAULT_FILE_PATTERNS
    ignored_titles: Tuple[str, ...] = DEFAULT_IGNORED_TITLES
    default_project_title: str = DEFAULT_PROJECT_TITLE
    binary_extensions: Tuple[str, ...] = BINARY_DOCUMENT_EXTENSIONS

    min_label_length: int = 5
    max_label_length: int = 500
    container_min_width: float = 50.0
    container_min_height: float = 20.0
    close_control_max_size: float = 60.0
    close_control_margin: float = 80.0
    min_content_length: int = 50
    min_artifact_length: int = 10

    poll_interval: float = 0.1
    open_timeout: float = 7.0
    open_settle_delay: float = 1.0
    close_button_timeout: float = 1.0
    close_key_attempts: int = 3
    close_key_timeout: float = 0.5
    close_timeout: float = 3.0
    close_click_delay: float = 0.3
    close_key_delay: float = 0.2
    scroll_settle_delay: float = 0.3
    content_settle_delay: float = 0.5
    item_delay: float = 0.8
    skip_delay: float = 0.5
    fallback_stagger: float = 0.5
    completion_label_delay: float = 3.0


def rules_from_mapping(data: Dict[str, Any], base: ExtractionRules | None = None) -> ExtractionRules:
    """Return ``base`` (or the defaults) with the values from ``data`` applied.

    Raises ValueError for keys that are not rule names.
    """

    base = base or ExtractionRules()
    known = {field.name: field for field in fields(ExtractionRules)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"Unknown extraction rule(s): {', '.join(unknown)}")

    overrides: Dict[str, Any] = {}
    for key, value in data.items():
        current = getattr(base, key)
        if isinstance(current, tuple):
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise ValueError(f"Rule '{key}' expects a list of strings.")
            overrides[key] = tuple(str(item) for item in value)
        elif isinstance(current, bool) or not isinstance(current, (int, float)):
            overrides[key] = value
        else:
            overrides[key] = type(current)(value)
    return replace(base, **overrides)


def load_rules(path: Path, base: ExtractionRules | None = None) -> ExtractionRules:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Rules file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Rules file is not valid JSON: {path} ({exc})") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Rules file must contain a JSON object: {path}")
    return rules_from_mapping(data, base)
