from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from tablelog.errors import DDLError, InsertError
from tablelog.handler import Lifecycle, SinkState, TableLogHandler, dispatch
from tablelog.projector import LogEntry
from tablelog.schema import DEFAULT_COLUMNS, TimeEncoding


def _record(level: int = logging.INFO, msg: str = "Test", name: str = "app", **extra) -> logging.LogRecord:
    record = logging.LogRecord(name, level, __file__, 1, msg, None, None)
    record.__dict__.update(extra)
    return record


def _rows(executor, columns: str) -> list[tuple]:
    return executor.query_rows(f'SELECT {columns} FROM "log" ORDER BY "id"')


def test_lifecycle_runs_initializer_once():
    lifecycle = Lifecycle()
    calls: list[int] = []

    assert lifecycle.state is SinkState.UNINITIALIZED
    assert lifecycle.ensure(lambda: calls.append(1) or "done") == "done"
    assert lifecycle.ensure(lambda: calls.append(2)) is None
    assert calls == [1]
    assert lifecycle.state is SinkState.INITIALIZED


def test_lifecycle_stays_uninitialized_when_initializer_fails():
    lifecycle = Lifecycle()

    def _fail() -> None:
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        lifecycle.ensure(_fail)
    assert lifecycle.state is SinkState.UNINITIALIZED
    assert lifecycle.runs == 0


@pytest.mark.parametrize("threshold", [logging.INFO, logging.WARNING, logging.CRITICAL])
@pytest.mark.parametrize("level", [logging.DEBUG, logging.INFO, logging.ERROR])
def test_threshold_gate_performs_no_io(recording_executor, threshold: int, level: int):
    handler = TableLogHandler(recording_executor, "log", ["username"], level=threshold)

    handled = handler.handle(_record(level))

    assert handled is (level >= threshold)
    if not handled:
        assert recording_executor.io_count == 0
        assert handler.state is SinkState.UNINITIALIZED


def test_initializes_exactly_once_across_writes(recording_executor):
    handler = TableLogHandler(recording_executor, "log", ["username"])

    for _ in range(3):
        assert handler.handle(_record(username="x")) is True

    assert handler.lifecycle.runs == 1
    assert len(recording_executor.queries) == 1
    assert len(recording_executor.inserts) == 3


def test_eager_initialization(recording_executor):
    handler = TableLogHandler(recording_executor, "log", ["username"], initialize=True)

    assert handler.state is SinkState.INITIALIZED
    assert recording_executor.columns == list(DEFAULT_COLUMNS) + ["username"]
    assert handler.live_columns == tuple(DEFAULT_COLUMNS) + ("username",)


def test_skip_schema_sync_never_runs_ddl(recording_executor):
    recording_executor.columns = list(DEFAULT_COLUMNS)
    handler = TableLogHandler(recording_executor, "log", ["username"], skip_schema_sync=True)

    handler.handle(_record(username="x"))

    assert recording_executor.statements == []
    ((sql, params),) = recording_executor.inserts
    assert sql == "INSERT INTO `log` (`channel`, `level`, `message`, `time`, `username`) VALUES (:channel, :level, :message, :time, :username);"
    assert params["username"] == "x"


def test_forced_resync(recording_executor):
    handler = TableLogHandler(recording_executor, "log", ["username"], initialize=True)
    recording_executor.columns.append("rogue")

    assert handler.synchronize() is None
    result = handler.synchronize(force=True)

    assert result is not None
    assert result.dropped == ("rogue",)
    assert handler.lifecycle.runs == 2


def test_sync_failure_propagates_and_retries_on_next_write(recording_executor):
    recording_executor.fail_on = "CREATE TABLE"
    handler = TableLogHandler(recording_executor, "log")

    with pytest.raises(DDLError):
        handler.handle(_record())
    assert handler.state is SinkState.UNINITIALIZED

    recording_executor.fail_on = None
    assert handler.handle(_record()) is True


def test_insert_failure_propagates_and_keeps_state(recording_executor):
    handler = TableLogHandler(recording_executor, "log", ["username"])
    recording_executor.fail_on = "INSERT INTO"

    with pytest.raises(InsertError) as exc_info:
        handler.handle(_record(username="x"))

    assert exc_info.value.params["username"] == "x"
    assert handler.state is SinkState.INITIALIZED


def test_errors_reach_the_logging_caller(recording_executor):
    handler = TableLogHandler(recording_executor, "log")
    recording_executor.fail_on = "INSERT INTO"
    log = logging.getLogger("tablelog.tests.errors")
    log.propagate = False
    log.addHandler(handler)
    try:
        with pytest.raises(InsertError):
            log.error("boom")
    finally:
        log.removeHandler(handler)


def test_filters_reject_records(recording_executor):
    handler = TableLogHandler(recording_executor, "log")
    handler.addFilter(lambda record: record.name != "noisy")

    assert handler.handle(_record(name="noisy")) is False
    assert recording_executor.io_count == 0


def test_formatter_message_is_stored(recording_executor):
    handler = TableLogHandler(recording_executor, "log")
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))

    handler.handle(_record(msg="hello"))

    assert recording_executor.inserts[0][1]["message"] == "[INFO] hello"


def test_handle_entry(recording_executor):
    handler = TableLogHandler(recording_executor, "log", ["username"], level=logging.WARNING)
    entry = LogEntry(
        channel="app",
        level=logging.ERROR,
        message="m",
        timestamp=datetime(2021, 1, 1, tzinfo=timezone.utc),
        context={"username": "x"},
    )

    assert handler.handle_entry(entry) is True
    assert handler.handle_entry(entry.model_copy(update={"level": logging.DEBUG})) is False
    assert len(recording_executor.inserts) == 1


def test_dispatch_honours_bubble(recording_executor):
    first = TableLogHandler(recording_executor, "log", bubble=False, level=logging.ERROR)
    second = TableLogHandler(recording_executor, "log")

    assert dispatch([first, second], _record(logging.ERROR)) is True
    assert len(recording_executor.inserts) == 1

    # Below the first handler's threshold the record falls through.
    assert dispatch([first, second], _record(logging.INFO)) is True
    assert len(recording_executor.inserts) == 2

    first.bubble = True
    dispatch([first, second], _record(logging.ERROR))
    assert len(recording_executor.inserts) == 4


def test_close_closes_owned_executor(recording_executor):
    TableLogHandler(recording_executor, "log").close()
    assert recording_executor.closed is False

    TableLogHandler(recording_executor, "log", owns_executor=True).close()
    assert recording_executor.closed is True


def test_schema_growth_scenario(real_executor):
    handler = TableLogHandler(real_executor, "log", ["username", "userid"])
    log = logging.getLogger("tablelog.tests.growth")
    log.propagate = False
    log.setLevel(logging.DEBUG)
    log.addHandler(handler)
    try:
        log.info("Test", extra={"username": "waza-ari", "userid": 1337})
    finally:
        log.removeHandler(handler)

    assert _rows(real_executor, '"id", "channel", "level", "message", "username", "userid"') == [
        (1, "tablelog.tests.growth", logging.INFO, "Test", "waza-ari", "1337"),
    ]
    ((stored_time,),) = _rows(real_executor, '"time"')
    assert isinstance(stored_time, int) and stored_time > 0


def test_schema_shrink_scenario(real_executor):
    TableLogHandler(real_executor, "log", ["username", "userid"]).handle(_record(username="a", userid=1))

    handler = TableLogHandler(real_executor, "log", ["username"])
    handler.handle(_record(username="b", userid=2))

    live = real_executor.query_columns('SELECT * FROM "log" LIMIT 0')
    assert "userid" not in live
    assert _rows(real_executor, '"username"') == [("a",), ("b",)]


def test_missing_unknown_and_identity_fields(real_executor):
    handler = TableLogHandler(real_executor, "log", ["username", "userid"])

    handler.handle(_record(username="waza-ari"))
    handler.handle(_record(username="x", item="Cat", id=11))

    assert _rows(real_executor, '"id", "username", "userid"') == [(1, "waza-ari", None), (2, "x", None)]
    assert "item" not in real_executor.query_columns('SELECT * FROM "log" LIMIT 0')


def test_default_name_in_additional_columns(real_executor):
    handler = TableLogHandler(real_executor, "log", ["channel", "CORRELATION", "errorFile"], level=logging.INFO)

    handler.handle(_record(logging.ERROR, name="svc", id=11, test1="aaa"))

    live = real_executor.query_columns('SELECT * FROM "log" LIMIT 0')
    assert live == ["id", "channel", "level", "message", "time", "CORRELATION", "errorFile"]
    assert _rows(real_executor, '"id", "channel", "level", "CORRELATION", "errorFile"') == [
        (1, "svc", logging.ERROR, None, None),
    ]


def test_recode_time_through_handler(sqlite_executor):
    TableLogHandler(sqlite_executor, "log").handle(_record())

    handler = TableLogHandler(sqlite_executor, "log", time_encoding=TimeEncoding.DATETIME)
    assert handler.recode_time(TimeEncoding.EPOCH) == 1
    handler.handle(_record())

    values = [value for (value,) in _rows(sqlite_executor, '"time"')]
    assert all(isinstance(value, str) and len(value) == 19 for value in values)


def test_recode_time_twice_leaves_table_intact(real_executor):
    TableLogHandler(real_executor, "log").handle(_record())
    handler = TableLogHandler(real_executor, "log", time_encoding=TimeEncoding.DATETIME)

    assert handler.recode_time(TimeEncoding.EPOCH) == 1
    assert handler.recode_time(TimeEncoding.EPOCH) == 0

    live = real_executor.query_columns('SELECT * FROM "log" LIMIT 0')
    assert live == list(DEFAULT_COLUMNS)
    handler.handle(_record())
    assert len(_rows(real_executor, '"time"')) == 2
