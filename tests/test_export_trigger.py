"""Tests for the export button behaviour."""

import pytest

from export_pipeline import NO_FILES_MESSAGE, ExportError, ExportRun
from export_trigger import IDLE_LABEL, NO_FILES_HINT, ExportTrigger


class FakeButton:
    def __init__(self):
        self.labels = []
        self.enabled = []
        self.scheduled = []
        self.notices = []

    def trigger(self):
        return ExportTrigger(
            set_label=self.labels.append,
            set_enabled=self.enabled.append,
            schedule=lambda delay, callback: self.scheduled.append((delay, callback)),
            notify=lambda title, message: self.notices.append((title, message)),
        )


def finished_run(status):
    return ExportRun(project_title="Demo", source_url="https://claude.ai/project/demo", status=status)


@pytest.fixture
def button():
    return FakeButton()


def test_projects_status_onto_label(button):
    trigger = button.trigger()

    def task(on_status):
        on_status("Found 2 files, extracting...")
        on_status("Done! 2 files")
        return finished_run("Done! 2 files")

    run = trigger.activate(task)

    assert run.status == "Done! 2 files"
    assert button.labels == ["Scanning...", "Found 2 files, extracting...", "Done! 2 files"]
    assert button.enabled == [False, True]
    assert button.notices == []
    assert not trigger.is_running


def test_label_reverts_after_delay(button):
    trigger = button.trigger()
    trigger.activate(lambda on_status: finished_run("Done! 1 files"))

    [(delay, callback)] = button.scheduled
    callback()

    assert delay == 3.0
    assert button.labels[-1] == IDLE_LABEL


def test_reentrant_activation_is_rejected(button):
    trigger = button.trigger()
    nested = []

    def task(on_status):
        assert trigger.is_running
        nested.append(trigger.activate(lambda _: finished_run("should not run")))
        return finished_run("Done! 1 files")

    run = trigger.activate(task)

    assert nested == [None]
    assert run.status == "Done! 1 files"
    assert button.enabled == [False, True]


def test_no_files_notifies(button):
    trigger = button.trigger()

    trigger.activate(lambda on_status: finished_run(NO_FILES_MESSAGE))

    assert button.notices == [("No files found", NO_FILES_HINT)]


def test_export_error_is_reported(button):
    trigger = button.trigger()

    def task(on_status):
        raise ExportError("Could not open https://claude.ai/projects")

    assert trigger.activate(task) is None
    assert button.labels[-1] == "Export failed!"
    assert button.notices == [("Export failed", "Could not open https://claude.ai/projects")]
    assert button.enabled == [False, True]
    assert len(button.scheduled) == 1


def test_status_ignored_when_idle(button):
    trigger = button.trigger()
    trigger.show_status("late message")
    assert button.labels == []


def test_unexpected_error_is_reported(button):
    trigger = button.trigger()

    def task(on_status):
        raise RuntimeError("browser crashed")

    assert trigger.activate(task) is None
    assert button.labels[-1] == "Export failed!"
    assert button.notices == [("Export failed", "Unexpected error: browser crashed")]
    assert button.enabled == [False, True]
    assert not trigger.is_running
