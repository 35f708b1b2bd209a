"""Bundle extracted files into one ZIP, or save them one by one if that fails."""

from __future__ import annotations

import io
import json
import logging
import re
import time
import zipfile
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from extraction_rules import ExtractionRules

if TYPE_CHECKING:
    from export_pipeline import ExtractedArtifact

logger = logging.getLogger(__name__)

METADATA_FILENAME = "_export_metadata.json"
ZIP_MIME_TYPE = "application/zip"
TEXT_MIME_TYPE = "text/plain;charset=utf-8"

ArchiveBuilder = Callable[[Sequence[Tuple[str, bytes]]], bytes]


class PackagingError(RuntimeError):
    """Raised when the archive cannot be assembled or saved."""


class DownloadSink(Protocol):
    def save(self, filename: str, data: bytes, mime_type: str) -> Any: ...


class DirectorySink:
    """Save downloads as files inside ``output_dir``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)
        self.saved: List[Path] = []

    def save(self, filename: str, data: bytes, mime_type: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        destination = self.output_dir / Path(filename).name
        destination.write_bytes(data)
        self.saved.append(destination)
        logger.info("Saved %s (%s, %d bytes)", destination, mime_type, len(data))
        return destination


@dataclass(frozen=True)
class MetadataEntry:
    filename: str
    original_name: str
    size: int


@dataclass(frozen=True)
class RunMetadata:
    export_date: str
    project_title: str
    url: str
    file_count: int
    files: Tuple[MetadataEntry, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exportDate": self.export_date,
            "projectTitle": self.project_title,
            "url": self.url,
            "fileCount": self.file_count,
            "files": [
                {"filename": entry.filename, "originalName": entry.original_name, "size": entry.size}
                for entry in self.files
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


@dataclass
class PackageResult:
    mode: str
    archive_name: Optional[str] = None
    written: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def disambiguate(filename: str, index: int) -> str:
    stem, dot, extension = filename.rpartition(".")
    if not dot or not stem:
        return f"{filename}_{index}"
    return f"{stem}_{index}.{extension}"


def dedupe_filenames(
    artifacts: Sequence["ExtractedArtifact"],
    reserved: Sequence[str] = (METADATA_FILENAME,),
) -> List["ExtractedArtifact"]:
    """Return artifacts whose filenames are pairwise distinct.

    A repeated name gets ``_<index>`` (its position in the list) inserted before
    the extension; the index is bumped until the name is free.
    """

    used: Set[str] = set(reserved)
    result: List["ExtractedArtifact"] = []
    for index, artifact in enumerate(artifacts):
        filename = artifact.filename
        suffix = index
        while filename in used:
            filename = disambiguate(artifact.filename, suffix)
            suffix += 1
        used.add(filename)
        if filename != artifact.filename:
            logger.debug("Renamed duplicate %s -> %s", artifact.filename, filename)
            artifact = replace(artifact, filename=filename)
        result.append(artifact)
    return result


def iso_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_metadata(
    artifacts: Sequence["ExtractedArtifact"],
    project_title: str,
    source_url: str,
    now: datetime,
) -> RunMetadata:
    return RunMetadata(
        export_date=iso_timestamp(now),
        project_title=project_title,
        url=source_url,
        file_count=len(artifacts),
        files=tuple(
            MetadataEntry(artifact.filename, artifact.original_label, artifact.byte_size)
            for artifact in artifacts
        ),
    )


def archive_filename(project_title: str, now: datetime) -> str:
    safe_title = re.sub(r"[^a-zA-Z0-9_-]", "_", project_title)[:50]
    timestamp = re.sub(r"[:.]", "-", iso_timestamp(now))[:16]
    return f"{safe_title}_{timestamp}.zip"


def build_zip(entries: Sequence[Tuple[str, bytes]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=6) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buffer.getvalue()


def create_archive(
    artifacts: Sequence["ExtractedArtifact"],
    metadata: RunMetadata,
    builder: ArchiveBuilder = build_zip,
) -> bytes:
    entries = [(artifact.filename, artifact.content.encode("utf-8")) for artifact in artifacts]
    entries.append((METADATA_FILENAME, metadata.to_json().encode("utf-8")))
    try:
        blob = builder(entries)
    except Exception as exc:
        raise PackagingError(f"Could not build archive: {exc}") from exc
    logger.info("ZIP created: %d bytes", len(blob))
    return blob


def save_individual_files(
    artifacts: Sequence["ExtractedArtifact"],
    sink: DownloadSink,
    stagger: float,
    sleep: Callable[[float], None] = time.sleep,
) -> PackageResult:
    """Save each artifact on its own. Failures are logged, never retried."""

    result = PackageResult(mode="individual")
    for index, artifact in enumerate(artifacts):
        if index and stagger > 0:
            sleep(stagger)
        try:
            sink.save(artifact.filename, artifact.content.encode("utf-8"), TEXT_MIME_TYPE)
        except Exception as exc:  # noqa: BLE001 - fallback is best-effort
            logger.error("Could not save %s: %s", artifact.filename, exc)
            result.failed.append(artifact.filename)
            continue
        result.written.append(artifact.filename)
    return result


def package_artifacts(
    artifacts: Sequence["ExtractedArtifact"],
    sink: DownloadSink,
    project_title: str,
    source_url: str,
    rules: Optional[ExtractionRules] = None,
    builder: ArchiveBuilder = build_zip,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[datetime] = None,
) -> PackageResult:
    """Save ``artifacts`` as one archive, falling back to individual files."""

    rules = rules or ExtractionRules()
    now = now or datetime.now(timezone.utc)
    unique = dedupe_filenames(artifacts)
    metadata = build_metadata(unique, project_title, source_url, now)
    name = archive_filename(project_title, now)

    try:
        blob = create_archive(unique, metadata, builder)
        try:
            sink.save(name, blob, ZIP_MIME_TYPE)
        except Exception as exc:  # noqa: BLE001 - any sink failure falls back
            raise PackagingError(f"Could not save archive {name}: {exc}") from exc
    except PackagingError as exc:
        logger.error("ZIP failed, saving files individually: %s", exc)
        return save_individual_files(unique, sink, rules.fallback_stagger, sleep)

    return PackageResult(
        mode="archive",
        archive_name=name,
        written=[artifact.filename for artifact in unique],
    )
