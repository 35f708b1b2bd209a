"""Sequence discovery, detail-view extraction and packaging for one export run.

``extract_project_files`` walks the located candidates one at a time: open the
detail view, read its content, resolve a filename, close the view. A failure
on one candidate is recorded and the loop moves on. ``execute_export`` wraps a
whole run, including packaging and the individual-file fallback.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional
from urllib.parse import unquote, urlparse

from archive_packager import DownloadSink, PackageResult, dedupe_filenames, package_artifacts
from content_extractor import extract_content
from detail_view import DetailViewController
from extraction_rules import ExtractionRules
from file_locator import CandidateHandle, locate_candidates
from filename_resolver import build_filename, resolve_filename
from page_adapter import PageAdapter

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]
FailureHook = Callable[[CandidateHandle, str], None]

NO_FILES_MESSAGE = "No files found!"


class ExportError(RuntimeError):
    """Raised when an export run fails outside the per-file guard."""


@dataclass(frozen=True)
class ExtractedArtifact:
    filename: str
    content: str
    original_label: str
    byte_size: int

    @classmethod
    def create(cls, filename: str, content: str, original_label: str) -> "ExtractedArtifact":
        return cls(
            filename=filename,
            content=content,
            original_label=original_label,
            byte_size=len(content.encode("utf-8")),
        )


@dataclass(frozen=True)
class SkippedCandidate:
    label: str
    reason: str


@dataclass
class ExportRun:
    """State of one export invocation, owned by whoever triggered it."""

    project_title: str
    source_url: str
    on_status: Optional[StatusCallback] = None
    artifacts: List[ExtractedArtifact] = field(default_factory=list)
    skipped: List[SkippedCandidate] = field(default_factory=list)
    status: str = ""
    is_running: bool = False
    candidate_count: int = 0
    package: Optional[PackageResult] = None

    def update_status(self, message: str) -> None:
        self.status = message
        logger.info(message)
        if self.on_status is not None:
            self.on_status(message)

    def skip(self, candidate: CandidateHandle, reason: str) -> None:
        self.skipped.append(SkippedCandidate(label=candidate.label, reason=reason))


def resolve_project_title(adapter: PageAdapter, rules: Optional[ExtractionRules] = None) -> str:
    """Best guess at the project's display name for naming the archive."""

    rules = rules or ExtractionRules()
    for selector in rules.title_selectors:
        element = adapter.query(selector)
        if element is None:
            continue
        text = adapter.text(element).strip()
        if 2 < len(text) < 100 and text not in rules.ignored_titles:
            return text

    match = re.search(r"project/([^/]+)", urlparse(adapter.url).path)
    if match:
        return re.sub(r"[-_]", " ", unquote(match.group(1)))

    return rules.default_project_title


def extract_candidate(
    adapter: PageAdapter,
    controller: DetailViewController,
    candidate: CandidateHandle,
    run: ExportRun,
    rules: ExtractionRules,
    position: int,
) -> Optional[str]:
    """Process one candidate. Returns a skip reason, or None on success."""

    raw_name = resolve_filename(adapter, candidate, rules)
    total = run.candidate_count
    logger.info("Processing file %d/%d: %s", position, total, raw_name)
    run.update_status(f"Extracting {position}/{total}: {raw_name[:30]}...")

    adapter.scroll_into_view(candidate.element)
    adapter.wait(rules.scroll_settle_delay)

    view = controller.open(candidate)
    if view is None:
        return "open_timeout"

    adapter.wait(rules.content_settle_delay)
    content = extract_content(adapter, view, rules)

    if len(content) <= rules.min_artifact_length:
        logger.info("Content too short for %r, skipping", raw_name)
        controller.close()
        adapter.wait(rules.skip_delay)
        return "content_too_short"

    filename = build_filename(raw_name, content, rules)
    run.artifacts.append(ExtractedArtifact.create(filename, content, raw_name))
    logger.info("Extracted %d chars -> %s", len(content), filename)

    controller.close()
    adapter.wait(rules.item_delay)
    return None


def extract_project_files(
    adapter: PageAdapter,
    run: ExportRun,
    rules: Optional[ExtractionRules] = None,
    on_failure: Optional[FailureHook] = None,
) -> List[ExtractedArtifact]:
    """Collect every readable file entry on the page into ``run.artifacts``."""

    rules = rules or ExtractionRules()
    run.update_status("Scanning for files...")

    candidates = locate_candidates(adapter, rules)
    run.candidate_count = len(candidates)
    if not candidates:
        return run.artifacts

    run.update_status(f"Found {len(candidates)} files, extracting...")
    controller = DetailViewController(adapter, rules)

    for position, candidate in enumerate(candidates, start=1):
        try:
            reason = extract_candidate(adapter, controller, candidate, run, rules, position)
        except Exception as exc:  # noqa: BLE001 - one bad file never aborts the run
            logger.exception("Error processing %r", candidate.label[:60])
            reason = f"error: {exc}"
            controller.close()
            adapter.wait(rules.skip_delay)

        if reason is not None:
            run.skip(candidate, reason)
            if on_failure is not None:
                on_failure(candidate, reason)

    logger.info("Successfully extracted %d files", len(run.artifacts))
    return run.artifacts


def execute_export(
    adapter: PageAdapter,
    sink: DownloadSink,
    rules: Optional[ExtractionRules] = None,
    *,
    project_title: Optional[str] = None,
    on_status: Optional[StatusCallback] = None,
    on_failure: Optional[FailureHook] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> ExportRun:
    """Run a full export against the current page and hand the result to ``sink``.

    An empty page is reported through the run status, not raised. Anything
    that fails outside the per-file guard is raised as ``ExportError``.
    """

    rules = rules or ExtractionRules()
    run = ExportRun(project_title="", source_url="", on_status=on_status)
    run.is_running = True
    try:
        run.source_url = adapter.url
        extract_project_files(adapter, run, rules, on_failure)

        if not run.artifacts:
            run.update_status(NO_FILES_MESSAGE)
            return run

        run.artifacts = dedupe_filenames(run.artifacts)
        run.project_title = project_title or resolve_project_title(adapter, rules)
        run.update_status(f"Creating ZIP ({len(run.artifacts)} files)...")
        run.package = package_artifacts(
            run.artifacts,
            sink,
            project_title=run.project_title,
            source_url=run.source_url,
            rules=rules,
            sleep=sleep or adapter.wait,
        )
        if run.package.mode == "archive":
            run.update_status(f"Done! {len(run.artifacts)} files")
        else:
            run.update_status("ZIP failed, downloaded files individually")
        return run
    except ExportError:
        run.update_status("Export failed!")
        raise
    except Exception as exc:
        run.update_status("Export failed!")
        raise ExportError(f"Export failed: {exc}") from exc
    finally:
        run.is_running = False
