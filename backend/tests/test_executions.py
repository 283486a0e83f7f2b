"""Tests for the execution log store."""

import re

import pytest

from zerotrust.errors import ExecutionNotFound, InvalidExecutionState
from zerotrust.executions import store
from zerotrust.models import CronExecutionLog, ScanLog
from zerotrust.scanner.base import ScanResult

from .helpers import make_detections


class TestLifecycle:

    def test_start_creates_running_execution(self, app):
        execution = store.start_execution()
        assert execution.status == "running"
        assert re.fullmatch(r"fzt-\d+-[0-9a-f]{16}", execution.execution_id)
        assert execution.finished_at is None

    def test_ids_are_unique(self, app):
        ids = {store.start_execution().execution_id for _ in range(5)}
        assert len(ids) == 5

    def test_complete_sets_totals(self, app):
        eid = store.start_execution().execution_id
        store.record_scan(eid, ScanResult("srv-1", detections=make_detections(2), files_scanned=9))

        execution = store.complete_execution(
            eid, servers_scanned=1, total_detections=2, summary="ok", details={"nodes": []}
        )

        assert execution.status == "completed"
        assert execution.finished_at is not None
        assert execution.servers_scanned == 1
        assert execution.total_detections == 2
        assert execution.details_json == {"nodes": []}

    def test_fail_records_reason(self, app):
        eid = store.start_execution().execution_id
        execution = store.fail_execution(eid, "config unavailable")
        assert execution.status == "failed"
        assert "config unavailable" in execution.summary


class TestTerminalState:

    def test_complete_twice_rejected(self, app):
        eid = store.start_execution().execution_id
        store.complete_execution(eid, 0, 0)
        with pytest.raises(InvalidExecutionState):
            store.complete_execution(eid, 0, 0)

    def test_fail_after_complete_rejected(self, app):
        eid = store.start_execution().execution_id
        store.complete_execution(eid, 0, 0)
        with pytest.raises(InvalidExecutionState):
            store.fail_execution(eid, "late")
        assert CronExecutionLog.query.filter_by(execution_id=eid).one().status == "completed"

    def test_complete_after_fail_rejected(self, app):
        eid = store.start_execution().execution_id
        store.fail_execution(eid, "boom")
        with pytest.raises(InvalidExecutionState):
            store.complete_execution(eid, 0, 0)

    def test_no_scan_logs_after_completion(self, app):
        eid = store.start_execution().execution_id
        store.complete_execution(eid, 0, 0)
        with pytest.raises(InvalidExecutionState):
            store.record_scan(eid, ScanResult("srv-1"))
        assert ScanLog.query.count() == 0

    def test_more_logs_than_servers_rejected(self, app):
        eid = store.start_execution().execution_id
        store.record_scan(eid, ScanResult("srv-1"))
        store.record_scan(eid, ScanResult("srv-2"))
        with pytest.raises(InvalidExecutionState):
            store.complete_execution(eid, servers_scanned=1, total_detections=0)


class TestScanLogs:

    def test_failed_result_logged_with_error(self, app):
        eid = store.start_execution().execution_id
        row = store.record_scan(eid, ScanResult("srv-1", server_name="alpha", error="node offline"))
        assert row.status == "failed"
        assert row.error == "node offline"
        assert row.detections == 0

    def test_unknown_execution(self, app):
        with pytest.raises(ExecutionNotFound):
            store.record_scan("fzt-0-0000000000000000", ScanResult("srv-1"))

    def test_get_execution_returns_logs_in_order(self, app):
        eid = store.start_execution().execution_id
        for sid in ("srv-1", "srv-2", "srv-3"):
            store.record_scan(eid, ScanResult(sid))

        execution, logs = store.get_execution(eid)
        assert execution.execution_id == eid
        assert [log.server_id for log in logs] == ["srv-1", "srv-2", "srv-3"]

    def test_get_missing_execution(self, app):
        with pytest.raises(ExecutionNotFound):
            store.get_execution("nope")


class TestPagination:

    @pytest.mark.parametrize("page, limit, expected", [
        (1, 25, (1, 25)),
        (0, 500, (1, 100)),
        (-3, 0, (1, 1)),
        (None, None, (1, 25)),
        (4, -10, (4, 1)),
    ])
    def test_clamping(self, page, limit, expected):
        assert store.clamp_pagination(page, limit) == expected

    def test_list_pages_and_filters(self, app):
        for _ in range(5):
            store.start_execution()
        done = store.start_execution().execution_id
        store.complete_execution(done, 0, 0)

        rows, pagination = store.list_executions(page=2, limit=2)
        assert len(rows) == 2
        assert pagination["current_page"] == 2
        assert pagination["total_records"] == 6
        assert pagination["total_pages"] == 3
        assert pagination["has_next"] is True
        assert pagination["has_prev"] is True
        assert (pagination["from"], pagination["to"]) == (3, 4)

        rows, pagination = store.list_executions(status="completed")
        assert [r.execution_id for r in rows] == [done]
        assert pagination["total_records"] == 1

    def test_empty_listing(self, app):
        rows, pagination = store.list_executions(page=3, limit=1000)
        assert rows == []
        assert pagination["per_page"] == 100
        assert (pagination["from"], pagination["to"]) == (0, 0)
        assert pagination["has_next"] is False
