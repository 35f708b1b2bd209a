"""Locate file-like entries in the host page's project knowledge panel."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Set

from extraction_rules import ExtractionRules
from page_adapter import PageAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateHandle:
    """An element believed to be a file entry, plus the label it had when found."""

    element: Any
    label: str
    index: int
    strategy: str = "primary"


def _compile_patterns(rules: ExtractionRules) -> List["re.Pattern[str]"]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in rules.file_patterns]


def looks_like_file_label(text: str, rules: ExtractionRules) -> bool:
    """True if ``text`` carries a line count, an extension, or a byte size."""

    return any(pattern.search(text) for pattern in _compile_patterns(rules))


def is_denylisted(text: str, rules: ExtractionRules) -> bool:
    lowered = text.strip().lower()
    return any(lowered == label.lower() for label in rules.denylist)


def _length_ok(text: str, rules: ExtractionRules) -> bool:
    return rules.min_label_length <= len(text) <= rules.max_label_length


def scan_activatable(adapter: PageAdapter, rules: ExtractionRules) -> List[CandidateHandle]:
    candidates: List[CandidateHandle] = []
    seen: Set[str] = set()

    for element in adapter.query_all(rules.activatable_selector):
        text = adapter.text(element).strip()
        if text in seen:
            continue
        if not _length_ok(text, rules) or is_denylisted(text, rules):
            continue

        if not looks_like_file_label(text, rules):
            logger.debug("Plausible element without file markers: %r", text[:80])
            continue

        box = adapter.bounds(element)
        if box is None or not box.is_rendered:
            logger.debug("File-like element has no rendered size: %r", text[:80])
            continue

        seen.add(text)
        candidates.append(CandidateHandle(element=element, label=text, index=len(candidates)))
        logger.debug("Found file element: %s", text[:60])
    return candidates


def scan_file_containers(adapter: PageAdapter, rules: ExtractionRules) -> List[CandidateHandle]:
    candidates: List[CandidateHandle] = []
    seen: Set[str] = set()

    for container in adapter.query_all(rules.file_container_selector):
        for item in adapter.query_all(rules.list_item_selector, scope=container):
            text = adapter.text(item).strip()
            if text in seen or not _length_ok(text, rules):
                continue
            box = adapter.bounds(item)
            if box is None:
                continue
            if box.width <= rules.container_min_width or box.height <= rules.container_min_height:
                continue
            seen.add(text)
            candidates.append(
                CandidateHandle(
                    element=item, label=text, index=len(candidates), strategy="container"
                )
            )
            logger.debug("Found file in container: %s", text[:60])
    return candidates


def locate_candidates(adapter: PageAdapter, rules: Optional[ExtractionRules] = None) -> List[CandidateHandle]:
    """Return file candidates in discovery order, deduplicated by label text.

    Activatable elements carrying file markers are preferred. Only when none
    are found are list items inside knowledge/files containers considered.
    Never raises for an empty page.
    """

    rules = rules or ExtractionRules()
    candidates = scan_activatable(adapter, rules)
    if not candidates:
        logger.info("No file markers found on activatable elements, scanning containers")
        candidates = scan_file_containers(adapter, rules)
    logger.info("Found %d file elements", len(candidates))
    return candidates
