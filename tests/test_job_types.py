"""
Tests for StatusRecord merging, percentages and job status helpers.
"""

import json

import pytest
from pydantic import ValidationError

from jobstate.jobs.job_types import Checkpoint, JobStatus, Killed, StatusRecord, generate_id
from tests.sample_jobs import WorkingJob


# =============================================================================
# BUILD / MERGE
# =============================================================================

class TestBuild:
    """StatusRecord.build merges partial updates in order."""

    def test_string_becomes_message(self):
        record = StatusRecord.build({"status": "working"}, "Half way")
        assert record.message == "Half way"
        assert record.status == JobStatus.WORKING

    def test_later_parts_win(self):
        record = StatusRecord.build({"message": "first", "num": 1}, {"message": "second"})
        assert record.message == "second"
        assert record.num == 1

    def test_defaults_to_queued(self):
        assert StatusRecord.build().status == JobStatus.QUEUED

    def test_none_parts_are_skipped(self):
        record = StatusRecord.build(None, "hello", None)
        assert record.message == "hello"

    def test_created_at_keeps_first_value(self):
        record = StatusRecord.build({"created_at": 5.0}, {"created_at": 10.0})
        assert record.created_at == 5.0

    def test_options_keep_first_value(self):
        existing = StatusRecord.build({"options": {"num": 1}})
        record = StatusRecord.build(existing, {"options": {"num": 2}})
        assert record.options == {"num": 1}

    def test_merge_over_record_keeps_created_at(self):
        existing = StatusRecord.build({"created_at": 42.0})
        record = StatusRecord.build(existing, {"status": "completed"})
        assert record.created_at == 42.0
        assert record.status == JobStatus.COMPLETED

    def test_job_id_is_applied(self):
        record = StatusRecord.build({"id": "other"}, job_id="abc")
        assert record.id == "abc"

    def test_unknown_keys_go_to_extra(self):
        record = StatusRecord.build({"rows_seen": 7})
        assert record.extra == {"rows_seen": 7}
        assert record.to_dict()["rows_seen"] == 7

    def test_pct_complete_is_dropped(self):
        record = StatusRecord.build({"pct_complete": 55})
        assert "pct_complete" not in record.to_dict()
        assert "pct_complete" not in record.extra

    def test_records_are_frozen(self):
        record = StatusRecord.build()
        with pytest.raises(ValidationError):
            record.message = "changed"


# =============================================================================
# VALIDATION
# =============================================================================

class TestValidation:
    """total must be a positive number when present."""

    @pytest.mark.parametrize("total", [0, -1, float("nan")])
    def test_non_positive_total_rejected(self, total):
        with pytest.raises(ValidationError):
            StatusRecord.build({"total": total})

    def test_positive_total_accepted(self):
        assert StatusRecord.build({"total": 10}).total == 10


# =============================================================================
# SERIALIZATION
# =============================================================================

class TestSerialization:
    """Stored form is a flat JSON object."""

    def test_json_round_trip_keeps_fields(self):
        record = StatusRecord.build(
            {"status": "working", "num": 3, "total": 9, "options": {"a": 1}, "custom": "x"},
            "msg",
            job_id="job-1"
        )
        decoded = StatusRecord.from_json(record.to_json())
        assert decoded == record

    def test_nested_options_round_trip(self):
        options = {"a": {"b": [1, "x"], "c": 2.5}, "files": [{"name": "a.csv"}]}
        record = StatusRecord.build({"options": options}, job_id="job-1")
        decoded = StatusRecord.from_json(record.to_json())
        assert decoded.options == options
        assert decoded == record

    def test_to_dict_is_flat_and_skips_none(self):
        data = StatusRecord.build({"status": "working"}, job_id="j").to_dict()
        assert data["id"] == "j"
        assert data["status"] == "working"
        assert "message" not in data
        assert data["options"] == {}
        json.dumps(data)

    def test_as_response_adds_pct_complete(self):
        record = StatusRecord.build({"status": "working", "num": 1, "total": 4})
        assert record.as_response()["pct_complete"] == 25


# =============================================================================
# PERCENT COMPLETE
# =============================================================================

class TestPercentComplete:
    """Percentage derived from status, num and total."""

    def test_completed_is_100(self):
        assert StatusRecord.build({"status": "completed", "num": 1, "total": 10}).percent_complete == 100

    @pytest.mark.parametrize("status", ["queued", "failed"])
    def test_queued_and_failed_are_0(self, status):
        assert StatusRecord.build({"status": status, "num": 5, "total": 10}).percent_complete == 0

    def test_working_uses_num_and_total(self):
        assert StatusRecord.build({"status": "working", "num": 50, "total": 100}).percent_complete == 50

    def test_truncates(self):
        assert StatusRecord.build({"status": "working", "num": 1, "total": 3}).percent_complete == 33

    def test_fractional_total_is_clamped_to_1(self):
        assert StatusRecord.build({"status": "working", "num": 0.25, "total": 0.5}).percent_complete == 25

    def test_missing_progress_is_0(self):
        assert StatusRecord.build({"status": "working"}).percent_complete == 0

    def test_killed_keeps_progress(self):
        assert StatusRecord.build({"status": "killed", "num": 3, "total": 4}).percent_complete == 75


# =============================================================================
# STATUS HELPERS
# =============================================================================

class TestStatusHelpers:
    """killable, pausable, has_status and created."""

    @pytest.mark.parametrize("status", ["completed", "failed", "killed"])
    def test_terminal_statuses_not_killable(self, status):
        record = StatusRecord.build({"status": status})
        assert not record.killable
        assert not record.pausable

    @pytest.mark.parametrize("status", ["queued", "working", "waiting"])
    def test_live_statuses_killable_and_pausable(self, status):
        record = StatusRecord.build({"status": status})
        assert record.killable
        assert record.pausable

    def test_paused_is_killable_not_pausable(self):
        record = StatusRecord.build({"status": "paused"})
        assert record.killable
        assert not record.pausable

    def test_has_status(self):
        record = StatusRecord.build({"status": "working"})
        assert record.has_status(JobStatus.WORKING, JobStatus.PAUSED)
        assert not record.has_status(JobStatus.COMPLETED)

    def test_created_is_utc_datetime(self):
        record = StatusRecord.build({"created_at": 0})
        assert record.created.year == 1970
        assert record.created.utcoffset().total_seconds() == 0


class TestMisc:
    def test_generate_id_is_32_hex(self):
        job_id = generate_id()
        assert len(job_id) == 32
        int(job_id, 16)
        assert generate_id() != job_id

    def test_checkpoint_raise_if_killed(self):
        assert Checkpoint.CONTINUE.raise_if_killed() is Checkpoint.CONTINUE
        with pytest.raises(Killed):
            Checkpoint.KILLED.raise_if_killed()

    def test_display_name_includes_sorted_options(self):
        assert WorkingJob.display_name({"num": 100}) == 'WorkingJob({"num": 100})'
        assert WorkingJob.display_name({"b": 1, "a": 2}) == 'WorkingJob({"a": 2, "b": 1})'
        assert WorkingJob.display_name() == "WorkingJob()"
