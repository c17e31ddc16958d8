"""Tests for monotonic progress merging (academy/services/progress.py)"""
import pytest
from datetime import datetime, timezone
from sqlalchemy.exc import IntegrityError, OperationalError

from academy.models.progress import Progress
from academy.services import events
from academy.services.errors import NotFound, TransactionConflict, ValidationError
from academy.services.progress import (
    initialize_progress,
    mark_complete,
    report_progress,
    watched_percent,
)
from conftest import make_chapter, make_progress, make_user, logged_event_types

NOW = datetime(2024, 1, 20, 19, 0, tzinfo=timezone.utc)


class _SerializationFailure(Exception):
    pgcode = "40001"


def _conflict():
    return OperationalError("INSERT INTO progress", {}, _SerializationFailure("could not serialize access"))


class TestWatchedPercent:
    def test_rounds_half_up(self):
        assert watched_percent(45, 300) == 15
        assert watched_percent(1, 8) == 13
        assert watched_percent(1, 3) == 33

    def test_capped_at_100(self):
        assert watched_percent(400, 300) == 100


class TestReportProgress:
    def test_stale_writer_cannot_lower_watched_time(self, mock_db):
        progress = make_progress()
        mock_db.first.return_value = progress

        report_progress(mock_db, 7, 45, 300, now=NOW)
        report_progress(mock_db, 7, 30, 300, now=NOW)

        assert progress.watched_duration == 45
        assert progress.watched_percent == 15
        assert progress.total_duration == 300
        assert progress.last_watched_at == NOW
        assert mock_db.commit.call_count == 2

    def test_stored_value_is_running_maximum(self, mock_db):
        progress = make_progress()
        mock_db.first.return_value = progress
        seen = 0

        for observed in [10, 50, 20, 70, 65, 0, 71.5]:
            report_progress(mock_db, 7, observed, 600)
            seen = max(seen, observed)
            assert progress.watched_duration == seen

    def test_zero_total_leaves_percent_unchanged(self, mock_db):
        progress = make_progress(watched_duration=30, total_duration=300, watched_percent=10)
        mock_db.first.return_value = progress

        report_progress(mock_db, 7, 40, 0)

        assert progress.watched_duration == 40
        assert progress.watched_percent == 10

    def test_report_after_completion_keeps_completion(self, mock_db):
        progress = make_progress()
        mock_db.first.return_value = progress

        mark_complete(mock_db, 7, 300, now=NOW)
        report_progress(mock_db, 7, 100, 300)

        assert progress.is_completed is True
        assert progress.watched_percent == 100
        assert progress.watched_duration == 300

    def test_negative_values_rejected_before_any_read(self, mock_db):
        with pytest.raises(ValidationError):
            report_progress(mock_db, 7, -1, 300)

        mock_db.query.assert_not_called()

    def test_unknown_record_is_not_found(self, mock_db):
        mock_db.first.return_value = None

        with pytest.raises(NotFound):
            report_progress(mock_db, 404, 10, 300, user_id=2)

        mock_db.rollback.assert_called_once()


class TestMarkComplete:
    def test_completion_overrides_partial_progress(self, mock_db):
        progress = make_progress(watched_duration=120, total_duration=300, watched_percent=40)
        mock_db.first.return_value = progress

        result = mark_complete(mock_db, 7, 300, now=NOW)

        assert result.is_completed is True
        assert result.watched_percent == 100
        assert result.watched_duration == 300
        assert result.last_watched_at == NOW

    def test_completion_event_logged_once(self, mock_db):
        mock_db.first.return_value = make_progress()

        mark_complete(mock_db, 7, 300)
        mark_complete(mock_db, 7, 300)

        assert logged_event_types(mock_db) == [events.PROGRESS_COMPLETED]

    def test_negative_total_rejected(self, mock_db):
        with pytest.raises(ValidationError):
            mark_complete(mock_db, 7, -5)


class TestInitializeProgress:
    def test_existing_record_returned_unchanged(self, mock_db):
        existing = make_progress(watched_duration=90, watched_percent=30)
        mock_db.first.return_value = existing

        result = initialize_progress(mock_db, make_user(), make_chapter())

        assert result is existing
        assert result.watched_duration == 90
        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_called()

    def test_missing_record_created_zeroed(self, mock_db):
        mock_db.first.return_value = None

        result = initialize_progress(mock_db, make_user(), make_chapter(id=100, course_id=10))

        assert isinstance(result, Progress)
        assert result.user_id == 2
        assert result.course_id == 10
        assert result.chapter_id == 100
        assert result.is_completed is False
        assert result.watched_duration == 0
        assert result.watched_percent == 0
        mock_db.add.assert_called_once_with(result)
        mock_db.commit.assert_called_once()

    def test_concurrent_creation_returns_the_winner(self, mock_db):
        winner = make_progress(id=8)
        mock_db.first.side_effect = [None, winner]
        mock_db.commit.side_effect = IntegrityError("INSERT INTO progress", {}, Exception("duplicate key"))

        result = initialize_progress(mock_db, make_user(), make_chapter())

        assert result is winner
        mock_db.rollback.assert_called_once()

    def test_serialization_conflict_on_create_is_retried(self, mock_db):
        mock_db.first.return_value = None
        mock_db.commit.side_effect = [_conflict(), None]

        result = initialize_progress(mock_db, make_user(), make_chapter())

        assert isinstance(result, Progress)
        assert mock_db.commit.call_count == 2
        mock_db.rollback.assert_called_once()

    def test_persistent_conflict_on_create_is_transaction_conflict(self, mock_db):
        mock_db.first.return_value = None
        mock_db.commit.side_effect = _conflict()

        with pytest.raises(TransactionConflict):
            initialize_progress(mock_db, make_user(), make_chapter())

        mock_db.refresh.assert_not_called()
