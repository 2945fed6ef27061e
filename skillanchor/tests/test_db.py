from unittest.mock import MagicMock

from skillanchor.app.infra.db import make_engine, relayer_lock


def _postgres_engine(acquired: bool):
    engine = MagicMock()
    engine.dialect.name = "postgresql"
    conn = engine.connect.return_value.execution_options.return_value.__enter__.return_value
    conn.execute.return_value.scalar.return_value = acquired
    return engine, conn


def _statements(conn):
    return [str(call.args[0]) for call in conn.execute.call_args_list]


def test_lock_taken_and_released_on_autocommit_connection():
    engine, conn = _postgres_engine(acquired=True)
    with relayer_lock(engine, key=7) as acquired:
        assert acquired is True
        assert _statements(conn) == ["SELECT pg_try_advisory_lock(:key)"]

    engine.connect.return_value.execution_options.assert_called_once_with(
        isolation_level="AUTOCOMMIT"
    )
    assert _statements(conn) == [
        "SELECT pg_try_advisory_lock(:key)",
        "SELECT pg_advisory_unlock(:key)",
    ]
    assert conn.execute.call_args.args[1] == {"key": 7}


def test_busy_lock_is_reported_and_not_released():
    engine, conn = _postgres_engine(acquired=False)
    with relayer_lock(engine) as acquired:
        assert acquired is False
    assert _statements(conn) == ["SELECT pg_try_advisory_lock(:key)"]


def test_sqlite_has_no_lock():
    engine = make_engine("sqlite://")
    try:
        with relayer_lock(engine) as acquired:
            assert acquired is True
    finally:
        engine.dispose()
