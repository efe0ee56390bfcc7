# tests/test_pipeline.py
"""End-to-end pipeline tests with scripted oracles."""

import pytest

PAGE_1 = "Member E1 Alice. Total sales 100. Sale 60."
PAGE_2 = "Member E1 continued. Total sales 100. Sale 40. Overall 200, revenue 100."

SEGMENT_A = {
    "identities": [{"id": "E1", "name": "Alice", "source_location": {"page": 1}}],
    "ledgers": [{
        "identity_id": "E1",
        "total_primary": 100,
        "details": [{"amount": 60, "type": "sale", "source_location": {"page": 1}}],
        "derived": {"total_secondary": 60, "average": 60, "source_location": {"page": 1}},
    }],
    "metadata": {"document_date": "2024-01-31"},
}

SEGMENT_B = {
    "identities": [{"id": "E1", "name": "Alice B."}],
    "ledgers": [{
        "identity_id": "E1",
        "total_primary": 100,
        "details": [{"amount": 40, "type": "sale", "source_location": {"page": 2}}],
        "derived": {"total_secondary": 40, "average": 40, "source_location": {"page": 2}},
    }],
    "overall_totals": {"total_primary": 200, "total_secondary": 100, "source_location": {"page": 2}},
    "metadata": {"period": "January 2024"},
}


@pytest.fixture
def two_pages(make_pages):
    return make_pages(PAGE_1, PAGE_2)


def _no_sleep_retry(attempts=1):
    from ledgerx.extraction.retry import RetryPolicy
    return RetryPolicy(max_attempts=attempts, sleep=lambda _s: None)


class TestEndToEnd:

    def test_two_segment_member_ledger(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.pipeline import run_pipeline
        oracle = scripted_oracle(responses={0: SEGMENT_A, 1: SEGMENT_B})
        fractions = []
        result = run_pipeline(
            two_pages, oracle, max_segment_chars=10, retry_policy=_no_sleep_retry(),
            on_progress=fractions.append,
        )
        assert result.status == "completed"
        assert result.ok
        assert len(result.segments) == 2

        agg = result.aggregate
        assert [i.name for i in agg.identities] == ["Alice"]
        ledger = agg.ledgers["E1"]
        assert ledger.total_primary == 200
        assert [d.amount for d in ledger.details] == [60, 40]
        assert ledger.derived.total_secondary == 100
        assert ledger.derived.average == 50
        assert agg.overall_totals.total_primary == 200
        assert agg.metadata.document_date == "2024-01-31"
        assert agg.metadata.period == "January 2024"

        report = result.validation
        assert report.is_valid
        assert report.errors == []
        assert report.warnings == []
        assert [f.name for f in report.verified_fields] == [
            "identity E1",
            "ledger E1 summary",
            "ledger E1 detail 1",
            "ledger E1 detail 2",
            "overall totals",
        ]
        assert fractions[-1] == 1.0

    def test_latency_does_not_change_result(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.pipeline import run_pipeline
        fast = run_pipeline(
            two_pages, scripted_oracle(responses={0: SEGMENT_A, 1: SEGMENT_B}),
            max_segment_chars=10, concurrency_limit=2,
        )
        slow_first = run_pipeline(
            two_pages,
            scripted_oracle(responses={0: SEGMENT_A, 1: SEGMENT_B}, delays={0: 0.1}),
            max_segment_chars=10, concurrency_limit=2,
        )
        a, b = fast.aggregate.to_dict(), slow_first.aggregate.to_dict()
        a["metadata"].pop("extraction_timestamp")
        b["metadata"].pop("extraction_timestamp")
        assert a == b

    def test_zero_pages(self, fresh_config, scripted_oracle):
        from ledgerx.pipeline import run_pipeline
        fractions = []
        oracle = scripted_oracle()
        result = run_pipeline([], oracle, on_progress=fractions.append)
        assert result.status == "completed"
        assert result.aggregate.identities == []
        assert result.validation.is_valid
        assert fractions == []
        assert oracle.calls == []

    def test_stage_metrics_recorded(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.pipeline import run_pipeline
        result = run_pipeline(two_pages, scripted_oracle(), max_segment_chars=10)
        assert [s.name for s in result.metrics.steps] == [
            "Segment pages", "Dispatch segments", "Merge records", "Verify against source",
        ]
        assert result.duration_s >= 0

    def test_raising_progress_callback_still_completes(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.pipeline import run_pipeline

        def broken(_fraction):
            raise ValueError("display went away")

        oracle = scripted_oracle(responses={0: SEGMENT_A, 1: SEGMENT_B})
        result = run_pipeline(
            two_pages, oracle, max_segment_chars=10, retry_policy=_no_sleep_retry(),
            on_progress=broken, on_result=lambda seg, rec: broken(0.0),
        )
        assert result.status == "completed"
        assert result.aggregate.ledgers["E1"].total_primary == 200


class TestFailurePolicy:

    def test_failed_segment_is_fatal_by_default(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.errors import ExtractionError, SegmentFailuresError
        from ledgerx.pipeline import run_pipeline
        oracle = scripted_oracle(responses={0: SEGMENT_A, 1: ExtractionError("garbled")})
        result = run_pipeline(two_pages, oracle, max_segment_chars=10, retry_policy=_no_sleep_retry())
        assert result.status == "failed"
        assert result.aggregate is None
        assert isinstance(result.error, SegmentFailuresError)
        assert result.error.segment_indices == [1]
        with pytest.raises(SegmentFailuresError):
            result.raise_for_status()

    def test_partial_results_when_allowed(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.errors import ExtractionError
        from ledgerx.pipeline import run_pipeline
        oracle = scripted_oracle(responses={0: SEGMENT_A, 1: ExtractionError("garbled")})
        result = run_pipeline(
            two_pages, oracle, max_segment_chars=10,
            retry_policy=_no_sleep_retry(), fail_on_segment_error=False,
        )
        assert result.status == "completed"
        assert result.skipped_segments == [1]
        assert result.aggregate.ledgers["E1"].total_primary == 100
        assert "segment 1 skipped: garbled" in result.validation.warnings

    def test_policy_from_config(self, fresh_config, monkeypatch, scripted_oracle, two_pages):
        monkeypatch.setenv("LEDGERX_FAIL_ON_SEGMENT_ERROR", "false")
        fresh_config.cache_clear()
        from ledgerx.errors import ExtractionError
        from ledgerx.pipeline import run_pipeline
        oracle = scripted_oracle(responses={1: ExtractionError("garbled")})
        result = run_pipeline(two_pages, oracle, max_segment_chars=10, retry_policy=_no_sleep_retry())
        assert result.status == "completed"
        assert result.skipped_segments == [1]

    def test_segmentation_error_before_any_call(self, fresh_config, scripted_oracle):
        from ledgerx.documents.models import PageText
        from ledgerx.errors import SegmentationError
        from ledgerx.pipeline import run_pipeline
        oracle = scripted_oracle()
        result = run_pipeline([PageText(2, "b"), PageText(1, "a")], oracle)
        assert result.status == "failed"
        assert isinstance(result.error, SegmentationError)
        assert oracle.calls == []

    def test_transient_failure_recovers_with_retry(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.pipeline import run_pipeline
        oracle = scripted_oracle(responses={0: [TimeoutError("slow"), SEGMENT_A], 1: SEGMENT_B})
        result = run_pipeline(two_pages, oracle, max_segment_chars=10, retry_policy=_no_sleep_retry(3))
        assert result.status == "completed"
        assert [slot.attempts for slot in result.slots] == [2, 1]


class TestCancellation:

    def test_cancelled_before_dispatch(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.errors import CancelledError
        from ledgerx.extraction.dispatcher import CancelToken
        from ledgerx.pipeline import run_pipeline
        token = CancelToken()
        token.cancel()
        oracle = scripted_oracle()
        result = run_pipeline(two_pages, oracle, max_segment_chars=10, cancel_token=token)
        assert result.status == "aborted"
        assert result.aggregate is None
        assert oracle.calls == []
        with pytest.raises(CancelledError):
            result.raise_for_status()

    def test_cancel_mid_run(self, fresh_config, scripted_oracle, make_pages):
        from ledgerx.extraction.dispatcher import CancelToken
        from ledgerx.pipeline import run_pipeline
        token = CancelToken()
        fractions = []

        def on_call(index):
            if index == 1:
                token.cancel()

        oracle = scripted_oracle(on_call=on_call)
        result = run_pipeline(
            make_pages(*[f"page {i}" for i in range(5)]), oracle,
            max_segment_chars=1, concurrency_limit=1,
            cancel_token=token, on_progress=fractions.append,
        )
        assert result.status == "aborted"
        assert result.aggregate is None
        assert result.validation is None
        assert len(fractions) <= 2


class TestArtifact:

    def test_to_dict(self, fresh_config, scripted_oracle, two_pages):
        import json

        from ledgerx.pipeline import run_pipeline
        result = run_pipeline(
            two_pages, scripted_oracle(responses={0: SEGMENT_A, 1: SEGMENT_B}), max_segment_chars=10,
        )
        data = result.to_dict(document={"filename": "statement.txt"})
        json.dumps(data)
        assert data["status"] == "completed"
        assert data["aggregate"]["ledgers"]["E1"]["total_primary"] == 200
        assert data["validation"]["is_valid"] is True
        meta = data["_ledgerx"]
        assert meta["pipeline"] == "segment-extract-merge-verify"
        assert meta["segments"] == {"total": 2, "ok": 2, "failed": 0, "cancelled": 0}
        assert meta["document"] == {"filename": "statement.txt"}
        assert "error" not in data

    def test_failed_to_dict_reports_error(self, fresh_config, scripted_oracle, two_pages):
        from ledgerx.errors import ExtractionError
        from ledgerx.pipeline import run_pipeline
        oracle = scripted_oracle(responses={1: ExtractionError("garbled")})
        data = run_pipeline(two_pages, oracle, max_segment_chars=10).to_dict()
        assert data["aggregate"] is None
        assert data["error"]["type"] == "SegmentFailuresError"
        assert data["error"]["segments"] == [1]
