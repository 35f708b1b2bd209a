"""Derive clean filenames and extensions from file entry labels."""

from __future__ import annotations

import json
import re
import time
from typing import Callable, Optional

from extraction_rules import BINARY_DOCUMENT_EXTENSIONS, ExtractionRules
from file_locator import CandidateHandle
from page_adapter import PageAdapter

LABEL_PATTERNS = (
    re.compile(r"^([^\n]+?\.[a-zA-Z0-9]{1,5})(?:\s|$)", re.MULTILINE),
    re.compile(r"^(.+?)\s*\n"),
    re.compile(r"^([^0-9\n]+?)(?:\s*\d+\s*(?:lines?|bytes?|KB|MB))", re.IGNORECASE),
)
LINES_SUFFIX = re.compile(r"\s*\d+\s*lines?\s*$", re.IGNORECASE)
ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*]')
EXTENSION = re.compile(r"\.([a-zA-Z0-9]{1,5})$")
MARKDOWN_HEADING = re.compile(r"^#{1,6}\s+\S", re.MULTILINE)


def placeholder_name(clock: Callable[[], float] = time.time) -> str:
    return f"Unknown_File_{int(clock() * 1000)}"


def filename_from_label(text: str, clock: Callable[[], float] = time.time) -> str:
    """Apply the label pattern chain to ``text`` and return the raw filename."""

    text = text.strip()
    for pattern in LABEL_PATTERNS:
        match = pattern.search(text)
        if match and len(match.group(1).strip()) > 2:
            return match.group(1).strip()

    if text:
        first_line = text.split("\n")[0].strip()
        return first_line[:50].strip() or placeholder_name(clock)
    return placeholder_name(clock)


def resolve_filename(
    adapter: PageAdapter,
    candidate: CandidateHandle,
    rules: Optional[ExtractionRules] = None,
    clock: Callable[[], float] = time.time,
) -> str:
    """Return the raw (unsanitised) filename for a candidate.

    A dedicated filename child element wins when its title or text is a
    sensible length; otherwise the label text is parsed.
    """

    rules = rules or ExtractionRules()
    name_element = adapter.query(rules.filename_label_selector, scope=candidate.element)
    if name_element is not None:
        title = adapter.attribute(name_element, "title") or adapter.text(name_element)
        title = (title or "").strip()
        if 2 <= len(title) <= 200:
            return title
    return filename_from_label(candidate.label, clock)


def sanitize_filename(name: str) -> str:
    """Make ``name`` safe for filesystems and archives.

    Idempotent: ``sanitize_filename(sanitize_filename(s)) == sanitize_filename(s)``.
    """

    previous = None
    while previous != name:
        previous = name
        name = LINES_SUFFIX.sub("", name)
    name = ILLEGAL_CHARS.sub("_", name)
    name = re.sub(r"\s+", "_", name)
    name = re.sub(r"_+", "_", name)
    return name.strip()


def existing_extension(filename: str) -> Optional[str]:
    match = EXTENSION.search(filename)
    return match.group(1) if match else None


def sniff_content_type(content: str) -> str:
    trimmed = content.strip()
    if trimmed.startswith(("{", "[")):
        try:
            json.loads(trimmed)
            return "json"
        except json.JSONDecodeError:
            pass
    if trimmed.startswith("<"):
        return "xml"
    if MARKDOWN_HEADING.search(trimmed):
        return "md"
    lines = trimmed.splitlines()
    if lines and "," in trimmed and all(len(line.split(",")) > 1 for line in lines):
        return "csv"
    return "txt"


def infer_file_type(
    filename: str,
    content: str,
    binary_extensions: tuple[str, ...] = BINARY_DOCUMENT_EXTENSIONS,
) -> str:
    """Return the extension ``filename`` should carry for ``content``.

    Binary document extensions map to ``<ext>.txt`` because the host UI only
    ever renders their extracted text.
    """

    extension = existing_extension(filename)
    if extension:
        if extension.lower() in binary_extensions:
            return f"{extension}.txt"
        return extension
    return sniff_content_type(content)


def build_filename(
    raw_name: str,
    content: str,
    rules: Optional[ExtractionRules] = None,
    clock: Callable[[], float] = time.time,
) -> str:
    """Sanitise ``raw_name`` and make sure it ends with a fitting extension."""

    rules = rules or ExtractionRules()
    name = sanitize_filename(raw_name) or sanitize_filename(placeholder_name(clock))
    file_type = infer_file_type(name, content, rules.binary_extensions)
    extension = existing_extension(name)
    stem = name[: -len(extension) - 1] if extension else name
    return f"{stem}.{file_type}"
