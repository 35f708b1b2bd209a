"""Tests for the detail dialog state machine."""

import pytest

from detail_view import DetailViewController, InvalidTransition, ViewState
from file_locator import CandidateHandle
from page_adapter import Bounds, wait_until
from tests.fake_page import RULES, FakeDialog, FakeNode, FakePage, file_entry

CONTENT = "def main():\n    print('hello world from the detail view')\n" * 2


def make_candidate(page, dialog, never_renders=False):
    row = file_entry("main.py 4 lines", on_activate=dialog.opener(CONTENT, never_renders))
    page.add(row)
    return CandidateHandle(element=row, label="main.py 4 lines", index=0)


class TestWaitUntil:
    """Tests for the bounded polling primitive."""

    def test_returns_first_truthy_value(self):
        page = FakePage()
        page.schedule(0.35, lambda: setattr(page, "url", "ready"))

        result = wait_until(lambda: page.url == "ready" and "ok", 1.0, 0.1, sleep=page.wait, clock=page.clock)

        assert result == "ok"
        assert page.now == pytest.approx(0.4)

    def test_times_out(self):
        page = FakePage()

        assert wait_until(lambda: None, 0.5, 0.1, sleep=page.wait, clock=page.clock) is None
        assert page.now == pytest.approx(0.5, abs=0.11)

    def test_checks_at_least_once(self):
        calls = []
        assert wait_until(lambda: calls.append(1) or True, 0, 0.1) is True
        assert calls == [1]


class TestOpen:
    """Tests for opening the detail view."""

    def test_open_success(self):
        page = FakePage()
        dialog = FakeDialog(page)
        controller = DetailViewController(page, RULES)

        view = controller.open(make_candidate(page, dialog))

        assert view is dialog.node
        assert controller.state is ViewState.OPEN
        assert controller.history == [ViewState.CLOSED, ViewState.OPENING, ViewState.OPEN]
        # poll until render at 0.3s, then the settle delay
        assert page.now == pytest.approx(0.3 + RULES.open_settle_delay)

    def test_open_timeout(self):
        page = FakePage()
        dialog = FakeDialog(page)
        controller = DetailViewController(page, RULES)

        view = controller.open(make_candidate(page, dialog, never_renders=True))

        assert view is None
        assert controller.state is ViewState.FAILED
        assert page.now == pytest.approx(RULES.open_timeout, abs=0.11)

    def test_zero_height_dialog_is_not_open(self):
        page = FakePage()
        page.add(FakeNode(selectors={RULES.dialog_selector}, bounds=Bounds(0, 0, 400, 0)))
        controller = DetailViewController(page, RULES)

        assert controller.visible_view() is None
        assert controller.is_closed()

    def test_open_allowed_after_failure(self):
        page = FakePage()
        dialog = FakeDialog(page)
        controller = DetailViewController(page, RULES)
        controller.open(make_candidate(page, dialog, never_renders=True))

        assert controller.open(make_candidate(page, dialog)) is dialog.node

    def test_open_rejected_while_open(self):
        page = FakePage()
        dialog = FakeDialog(page)
        controller = DetailViewController(page, RULES)
        candidate = make_candidate(page, dialog)
        controller.open(candidate)

        with pytest.raises(InvalidTransition):
            controller.open(candidate)

    def test_lingering_view_is_not_mistaken_for_new_one(self):
        page = FakePage()
        dialog = FakeDialog(page, closes_on=())
        controller = DetailViewController(page, RULES)
        controller.open(make_candidate(page, dialog))
        assert controller.close() is False

        assert controller.open(make_candidate(page, dialog, never_renders=True)) is None
        assert controller.state is ViewState.FAILED

    def test_lingering_view_accepted_once_content_changes(self):
        page = FakePage()
        dialog = FakeDialog(page, closes_on=())
        controller = DetailViewController(page, RULES)
        controller.open(make_candidate(page, dialog))
        controller.close()

        row = file_entry("other.py 2 lines", on_activate=dialog.opener("print('a different file entirely')" * 2))
        page.add(row)

        assert controller.open(CandidateHandle(element=row, label="other.py 2 lines", index=1)) is dialog.node
        assert "different file" in dialog.body.text


class TestClose:
    """Tests for the fallback closing strategies."""

    def _opened(self, closes_on):
        page = FakePage()
        dialog = FakeDialog(page, closes_on=closes_on)
        controller = DetailViewController(page, RULES)
        controller.open(make_candidate(page, dialog))
        return page, dialog, controller

    def test_close_with_dismiss_button(self):
        page, dialog, controller = self._opened(("button",))

        assert controller.close() is True
        assert not dialog.is_open
        assert page.keys == []
        assert controller.state is ViewState.CLOSED
        assert controller.history[-2:] == [ViewState.CLOSING, ViewState.CLOSED]

    def test_large_buttons_are_not_dismiss_controls(self):
        page, dialog, controller = self._opened(("button", "escape"))
        dialog.close_button.bounds = Bounds(300, 550, 200, 40)

        assert controller.close() is True
        assert dialog.close_button not in page.activations
        assert page.keys == ["Escape"]

    def test_far_away_buttons_are_ignored(self):
        page, dialog, controller = self._opened(("escape",))
        stray = FakeNode(selectors={RULES.close_selectors[0]}, bounds=Bounds(1200, 760, 20, 20))
        page.add(stray)

        controller.close()

        assert stray not in page.activations

    def test_close_with_escape(self):
        page, dialog, controller = self._opened(("escape",))

        assert controller.close() is True
        assert page.keys == ["Escape"]
        assert not dialog.is_open

    def test_close_with_backdrop(self):
        page, dialog, controller = self._opened(("backdrop",))

        assert controller.close() is True
        assert page.keys == ["Escape"] * RULES.close_key_attempts
        assert page.backdrop_clicks == [dialog.backdrop]
        assert not dialog.is_open

    def test_all_strategies_exhausted(self):
        page, dialog, controller = self._opened(())

        assert controller.close() is False
        assert dialog.is_open
        assert controller.state is ViewState.CLOSED
        assert controller.history[-3:] == [ViewState.CLOSING, ViewState.FAILED, ViewState.CLOSED]

    def test_close_when_nothing_is_open(self):
        page = FakePage()
        controller = DetailViewController(page, RULES)

        assert controller.close() is True
        assert page.keys == []
        assert controller.state is ViewState.CLOSED

    def test_failing_control_falls_through_to_escape(self):
        page, dialog, controller = self._opened(("escape",))
        dialog.close_button.fail_on_activate = True

        assert controller.close() is True
        assert page.keys == ["Escape"]
