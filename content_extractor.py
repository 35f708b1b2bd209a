"""Pick the body text out of an open detail dialog."""

from __future__ import annotations

import logging
from typing import Any, Optional

from extraction_rules import ExtractionRules
from page_adapter import PageAdapter

logger = logging.getLogger(__name__)


def extract_content(adapter: PageAdapter, view: Any, rules: Optional[ExtractionRules] = None) -> str:
    """Return the dialog's file content, or an empty string if none qualifies.

    Content containers are tried in priority order and the first one with
    more than ``min_content_length`` characters wins. Failing that, the whole
    dialog text minus buttons, headers, footers and navigation is used.
    """

    rules = rules or ExtractionRules()

    for selector in rules.content_selectors:
        for element in adapter.query_all(selector, scope=view):
            text = adapter.text(element).strip()
            if len(text) > rules.min_content_length:
                logger.debug("Found content in %s (%d chars)", selector, len(text))
                return text

    text = adapter.text_excluding(view, rules.chrome_selector).strip()
    if len(text) > rules.min_content_length:
        logger.debug("Using fallback extraction (%d chars)", len(text))
        return text

    logger.debug("No content found in detail view")
    return ""
