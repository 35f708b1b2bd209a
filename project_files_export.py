"""Export every knowledge file of a Claude project page as one ZIP archive.

The host UI has no export API, so this script drives a browser: it finds the
file entries listed on the project page, opens each entry's detail dialog,
copies the text it shows, and packages everything with a small metadata file.
If the archive cannot be written, the files are saved one by one instead.

Usage examples:

    # Launch a browser, log in and open the project by hand, then press Enter.
    python project_files_export.py --url https://claude.ai/projects --manual-continue

    # Reuse a browser started with --remote-debugging-port=9222.
    python project_files_export.py --cdp-url http://localhost:9222 --output-dir exports

Authentication is never automated. Log in through the launched window or in
the browser you attach to.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional, Tuple

from playwright.sync_api import (  # type: ignore[import-not-found]
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
    Browser,
    Page,
    Playwright,
    sync_playwright,
)

from archive_packager import DirectorySink
from export_pipeline import ExportError, ExportRun, StatusCallback, execute_export
from export_trigger import NO_FILES_HINT
from extraction_rules import ExtractionRules, load_rules
from file_locator import CandidateHandle
from page_adapter import PlaywrightPageAdapter, save_debug_artifacts

DEFAULT_URL = "https://claude.ai/projects"
DEFAULT_OUTPUT_DIR = Path("exports")

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export the knowledge files of a Claude project page to a ZIP archive."
    )
    parser.add_argument(
        "--url",
        default=DEFAULT_URL,
        help=f"Project page to open (default: {DEFAULT_URL}).",
    )
    parser.add_argument(
        "--cdp-url",
        help=(
            "Attach to a running Chromium over CDP (e.g. 'http://localhost:9222') "
            "instead of launching a new browser. The tab whose URL starts with "
            "--url is used, or the most recent tab."
        ),
    )
    parser.add_argument(
        "--output-dir",
        default=str(DEFAULT_OUTPUT_DIR),
        help=f"Directory for the archive or fallback files (default: {DEFAULT_OUTPUT_DIR}).",
    )
    parser.add_argument(
        "--title",
        help="Project title used to name the archive. Detected from the page when omitted.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Launch the browser without a window. Only useful with an already signed-in profile.",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Launch the browser with a visible window (default).",
    )
    parser.add_argument(
        "--manual-continue",
        action="store_true",
        help="Pause after opening the page; press Enter once the project files are visible.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=20.0,
        help="Seconds to wait for the page to finish loading (default: 20).",
    )
    parser.add_argument(
        "--start-wait",
        type=float,
        default=3.0,
        help="Extra seconds to wait after the page loads before scanning (default: 3).",
    )
    parser.add_argument(
        "--open-timeout",
        type=float,
        help="Seconds to wait for a file's detail dialog to appear (default: 7).",
    )
    parser.add_argument(
        "--close-timeout",
        type=float,
        help="Seconds to wait for the dialog to close after the last attempt (default: 3).",
    )
    parser.add_argument(
        "--settle-delay",
        type=float,
        help="Seconds to let dialog content render before reading it (default: 1).",
    )
    parser.add_argument(
        "--item-delay",
        type=float,
        help="Seconds to pause between files (default: 0.8).",
    )
    parser.add_argument(
        "--rules-file",
        help="JSON file overriding selectors, thresholds and timings.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging, plus screenshots/HTML in <output-dir>/debug for skipped files.",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.headless and args.headed:
        parser.error("--headless and --headed cannot be used together")

    try:
        args.rules = build_rules(args)
    except ValueError as exc:
        parser.error(str(exc))

    return args


def build_rules(args: argparse.Namespace) -> ExtractionRules:
    rules = ExtractionRules()
    if args.rules_file:
        rules = load_rules(Path(args.rules_file), rules)

    overrides = {
        "open_timeout": args.open_timeout,
        "close_timeout": args.close_timeout,
        "open_settle_delay": args.settle_delay,
        "item_delay": args.item_delay,
    }
    for key, value in overrides.items():
        if value is not None and value < 0:
            raise ValueError(f"--{key.replace('_', '-')} must not be negative")
    return replace(rules, **{key: value for key, value in overrides.items() if value is not None})


def resolve_headless(args: argparse.Namespace) -> bool:
    if args.headed:
        return False
    return bool(args.headless)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def wait_for_page_ready(page: Page, timeout: float, extra_wait: float) -> None:
    try:
        page.wait_for_load_state("networkidle", timeout=timeout * 1000)
    except PlaywrightTimeoutError:
        pass
    if extra_wait > 0:
        page.wait_for_timeout(int(extra_wait * 1000))


def pick_page(browser: Browser, url: str) -> Optional[Page]:
    pages = [page for context in browser.contexts for page in context.pages]
    for page in reversed(pages):
        if page.url.startswith(url):
            return page
    return pages[-1] if pages else None


def open_project_page(playwright: Playwright, args: argparse.Namespace) -> Tuple[Browser, Page, bool]:
    """Return (browser, page, owns_browser) with the project page loaded."""

    if args.cdp_url:
        browser = playwright.chromium.connect_over_cdp(args.cdp_url)
        page = pick_page(browser, args.url)
        if page is None:
            context = browser.contexts[0] if browser.contexts else browser.new_context()
            page = context.new_page()
            page.goto(args.url)
        return browser, page, False

    browser = playwright.chromium.launch(headless=resolve_headless(args))
    context = browser.new_context()
    page = context.new_page()
    page.goto(args.url)
    return browser, page, True


def run_export(args: argparse.Namespace, on_status: Optional[StatusCallback] = None) -> ExportRun:
    """Open the project page described by ``args`` and export its files."""

    try:
        with sync_playwright() as playwright:
            return export_with_playwright(playwright, args, on_status)
    except PlaywrightError as exc:
        raise ExportError(f"Playwright failed: {exc}") from exc


def export_with_playwright(
    playwright: Playwright,
    args: argparse.Namespace,
    on_status: Optional[StatusCallback] = None,
) -> ExportRun:
    output_dir = Path(args.output_dir)
    debug_dir = output_dir / "debug"
    sink = DirectorySink(output_dir)

    try:
        browser, page, owns_browser = open_project_page(playwright, args)
        wait_for_page_ready(page, args.timeout, args.start_wait)
    except PlaywrightError as exc:
        raise ExportError(f"Could not open {args.url}: {exc}") from exc

    if args.manual_continue:
        print(
            "Log in and open the project page if needed, then press Enter to continue...",
            file=sys.stderr,
        )
        try:
            input()
        except EOFError:
            pass

    def save_failure(candidate: CandidateHandle, reason: str) -> None:
        save_debug_artifacts(page, debug_dir, candidate.label[:60], reason)

    try:
        return execute_export(
            PlaywrightPageAdapter(page),
            sink,
            args.rules,
            project_title=args.title,
            on_status=on_status,
            on_failure=save_failure if args.debug else None,
        )
    finally:
        if owns_browser:
            try:
                browser.close()
            except PlaywrightError as exc:
                logger.debug("Browser close failed: %s", exc)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.debug)

    try:
        run = run_export(args, on_status=lambda message: print(message, file=sys.stderr))
    except ExportError as exc:
        print(f"Export failed: {exc}", file=sys.stderr)
        return 1

    if not run.artifacts:
        print(NO_FILES_HINT, file=sys.stderr)
        return 1

    package = run.package
    if package is not None and package.archive_name:
        print(f"Exported {len(run.artifacts)} files to {Path(args.output_dir) / package.archive_name}")
    elif package is not None:
        print(f"ZIP failed. Saved {len(package.written)} files individually to {args.output_dir}")
        for filename in package.failed:
            print(f"  Not saved: {filename}")
    if run.skipped:
        print("Skipped files:")
        for record in run.skipped:
            print(f"  {record.label[:60]} -> {record.reason}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
