"""Tests for the closed-shift history pager and date filters."""

import dataclasses
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from cashbox_kernel.domain.rows import Branch, RowStatus, new_row
from cashbox_services.closed_history import (
    ClosedShiftHistory,
    FilterPreset,
    filter_closed,
)

NOW = datetime(2024, 3, 10, 18, 0, tzinfo=timezone.utc)


def _archive(row_store, branch, closed_at):
    row = dataclasses.replace(
        new_row("سارة", closed_at - timedelta(hours=8)),
        status=RowStatus.CLOSED,
        closed_at=closed_at,
    )
    row_store.archive.put(branch, row)
    return row


@pytest.fixture
def eleven_closed(row_store):
    """Eleven archived rows, one hour apart; returned newest first."""
    rows = [
        _archive(row_store, Branch.CORNICHE, NOW - timedelta(hours=i))
        for i in range(11)
    ]
    return [r.id for r in rows]


class TestClosedShiftHistory:
    def test_first_page_is_shorter(self, row_store, eleven_closed):
        history = ClosedShiftHistory(row_store, Branch.CORNICHE)
        assert [r.id for r in history.page(1)] == eleven_closed[:4]
        assert [r.id for r in history.page(2)] == eleven_closed[4:9]
        assert [r.id for r in history.page(3)] == eleven_closed[9:]
        assert history.page(4) == []

    def test_has_next(self, row_store, eleven_closed):
        history = ClosedShiftHistory(row_store, Branch.CORNICHE)
        assert history.has_next(1) is True
        assert history.has_next(2) is True
        assert history.has_next(3) is False
        assert history.has_next(7) is False

    def test_jumping_ahead_loads_intermediate_pages(self, row_store, eleven_closed):
        history = ClosedShiftHistory(row_store, Branch.CORNICHE)
        assert [r.id for r in history.page(3)] == eleven_closed[9:]
        assert history.loaded_pages == 3

    def test_pages_are_cached_until_refresh(self, row_store, eleven_closed):
        history = ClosedShiftHistory(row_store, Branch.CORNICHE)
        history.page(1)
        with patch.object(row_store, "list_closed", wraps=row_store.list_closed) as spy:
            history.page(1)
            assert spy.call_count == 0
            history.refresh()
            history.page(1)
            assert spy.call_count == 1

    def test_refresh_sees_new_closes(self, row_store, eleven_closed):
        history = ClosedShiftHistory(row_store, Branch.CORNICHE)
        history.page(1)
        newest = _archive(row_store, Branch.CORNICHE, NOW + timedelta(minutes=1))
        assert history.page(1)[0].id == eleven_closed[0]
        history.refresh()
        assert history.page(1)[0].id == newest.id

    def test_switch_branch(self, row_store, eleven_closed):
        other = _archive(row_store, Branch.ANDALUSIA, NOW)
        history = ClosedShiftHistory(row_store, Branch.CORNICHE)
        history.page(1)
        history.switch_branch(Branch.ANDALUSIA)
        assert [r.id for r in history.page(1)] == [other.id]

    def test_empty_archive(self, row_store):
        history = ClosedShiftHistory(row_store, Branch.CORNICHE)
        assert history.page(1) == []
        assert history.has_next(1) is False

    def test_invalid_arguments(self, row_store):
        with pytest.raises(ValueError):
            ClosedShiftHistory(row_store, Branch.CORNICHE, first_page_size=0)
        history = ClosedShiftHistory(row_store, Branch.CORNICHE)
        with pytest.raises(ValueError):
            history.page(0)


class TestFilterClosed:
    def _rows(self):
        stamps = {
            "today": NOW - timedelta(hours=3),
            "yesterday": NOW - timedelta(days=1),
            "five_days": NOW - timedelta(days=5),
            "old": NOW - timedelta(days=9),
        }
        return {
            name: dataclasses.replace(
                new_row("سارة", at), status=RowStatus.CLOSED, closed_at=at
            )
            for name, at in stamps.items()
        }

    def test_today(self):
        rows = self._rows()
        kept = filter_closed(rows.values(), FilterPreset.TODAY, NOW)
        assert kept == [rows["today"]]

    def test_yesterday(self):
        rows = self._rows()
        kept = filter_closed(rows.values(), FilterPreset.YESTERDAY, NOW)
        assert kept == [rows["yesterday"]]

    def test_last_week(self):
        rows = self._rows()
        kept = filter_closed(rows.values(), "last_week", NOW)
        assert kept == [rows["today"], rows["yesterday"], rows["five_days"]]

    def test_days_follow_the_reference_timezone(self):
        riyadh = timezone(timedelta(hours=3))
        now = datetime(2024, 3, 10, 5, 0, tzinfo=riyadh)
        # 22:30 UTC on the 9th is 01:30 on the 10th in Riyadh
        closed_at = datetime(2024, 3, 9, 22, 30, tzinfo=timezone.utc)
        row = dataclasses.replace(
            new_row("سارة", closed_at), status=RowStatus.CLOSED, closed_at=closed_at
        )
        assert filter_closed([row], FilterPreset.TODAY, now) == [row]
        assert filter_closed([row], FilterPreset.TODAY, now.astimezone(timezone.utc)) == []
        assert filter_closed([row], FilterPreset.YESTERDAY, now.astimezone(timezone.utc)) == [row]

    def test_rows_without_closed_at_ignored(self):
        row = new_row("سارة", NOW)
        assert filter_closed([row], FilterPreset.TODAY, NOW) == []
