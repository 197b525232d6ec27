from sqlmodel import Session

from geostream.services.usage import record_fetch_run, usage_summary


def test_record_fetch_run_accumulates_per_product(memory_engine):
    record_fetch_run("streaming", requested=10, failed=2)
    record_fetch_run("streaming", requested=5)
    record_fetch_run("basemaps", requested=3, failed=0)

    with Session(memory_engine) as session:
        summary = usage_summary(session)

    assert [entry["product"] for entry in summary] == ["basemaps", "streaming"]
    streaming = summary[1]
    assert streaming["run_count"] == 2
    assert streaming["request_count"] == 15
    assert streaming["failure_count"] == 2
    assert streaming["last_used_at"] is not None


def test_empty_runs_are_not_recorded(memory_engine):
    record_fetch_run("analytics", requested=0)

    with Session(memory_engine) as session:
        assert usage_summary(session) == []
