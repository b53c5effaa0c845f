"""Tests for the database handle: lifecycle, dispatch and the statement registry."""

import threading
import time
from types import MappingProxyType

import pytest

from dbkit.db.database import Database
from dbkit.db.mock_backend import MockDatabase, MockStatement
from dbkit.db.result import ALL, Result
from dbkit.db.statement import BaseStatement


class FailingStatement(BaseStatement):
    """Statement whose engine always errors."""

    def new_execution(self, *binds):
        raise LookupError("no such table")

    def new_modification(self, *binds):
        raise LookupError("no such table")


class FailingDatabase(Database):
    def new_statement(self, query):
        return FailingStatement(query, self)


class TestConstruction:
    """Connection arguments and initial state."""

    def test_initial_state(self):
        dbh = Database()
        assert dbh.connected
        assert dbh.in_transaction == 0
        assert dbh.rewindable_result is False
        assert dbh.open_statements == {}
        assert dbh.last_query is None
        assert dbh.last_statement is None

    def test_connect_args_normalized(self):
        dbh = Database({"Database": "app", " HOST ": "db1"}, Port=5432)
        assert dict(dbh.connect_args) == {"database": "app", "host": "db1", "port": 5432}
        assert dbh.database_name == "app"

    def test_connect_args_read_only(self):
        dbh = Database(database="app")
        assert isinstance(dbh.connect_args, MappingProxyType)
        with pytest.raises(TypeError):
            dbh.connect_args["database"] = "other"  # type: ignore[index]

    def test_connect_args_not_shared_with_caller(self):
        args = {"database": "app"}
        dbh = Database(args)
        args["database"] = "changed"
        assert dbh.connect_args["database"] == "app"

    def test_repr(self):
        assert repr(Database(database="app")) == "Database('app', connected)"


class TestNotImplemented:
    """Base-handle stubs for backend capabilities."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda dbh: dbh.ping(),
            lambda dbh: dbh.schema(),
            lambda dbh: dbh.table_schema("people"),
            lambda dbh: dbh.new_statement("select 1"),
        ],
    )
    def test_stub_raises(self, call):
        with pytest.raises(NotImplementedError, match="not implemented in this driver"):
            call(Database())

    def test_execute_without_backend(self):
        dbh = Database()
        with pytest.raises(NotImplementedError):
            dbh.execute("select 1")
        assert dbh.last_query == "select 1"


class TestConnectionLifecycle:
    """disconnect and reconnect."""

    def test_disconnect_finishes_open_statements(self, mock_db):
        first = mock_db.prepare("select 1")
        second = mock_db.prepare("select 2")
        assert len(mock_db.open_statements) == 2
        mock_db.disconnect()
        assert not mock_db.connected
        assert mock_db.open_statements == {}
        assert first.finished and second.finished
        assert mock_db.finished_count == 2

    def test_disconnect_logs_leftover_statements(self, mock_db, caplog):
        mock_db.prepare("select * from people")
        with caplog.at_level("WARNING", logger="dbkit.db.database"):
            mock_db.disconnect()
        assert "left open at disconnect" in caplog.text
        assert "select * from people" in caplog.text

    def test_disconnect_finishes_each_statement_once(self, mock_db):
        sth = mock_db.prepare("select 1")
        mock_db.disconnect()
        sth.finish()
        mock_db.disconnect()
        assert mock_db.finished_count == 1

    def test_disconnect_finishes_remaining_after_failure(self, mock_db, caplog):
        first = mock_db.prepare("select 1")
        broken = mock_db.prepare("select 2")
        last = mock_db.prepare("select 3")

        def broken_release():
            raise OSError("cursor gone")

        broken.release = broken_release
        with pytest.raises(OSError, match="cursor gone"):
            mock_db.disconnect()
        assert first.finished and broken.finished and last.finished
        assert mock_db.finished_count == 2
        assert mock_db.open_statements == {}
        assert "Failed to finish statement" in caplog.text

    def test_disconnect_reraises_first_failure(self, mock_db):
        errors = [OSError("first"), ValueError("second")]
        for n, error in enumerate(errors):
            sth = mock_db.prepare(f"select {n}")

            def broken_release(error=error):
                raise error

            sth.release = broken_release
        with pytest.raises(OSError, match="first"):
            mock_db.disconnect()

    def test_reconnect(self, mock_db):
        mock_db.prepare("select 1")
        mock_db.disconnect()
        mock_db.reconnect()
        assert mock_db.connected
        assert mock_db.open_statements == {}

    def test_reconnect_swallows_disconnect_failure(self, caplog):
        class BrokenDisconnect(Database):
            def disconnect(self):
                raise OSError("socket already closed")

        dbh = BrokenDisconnect()
        with caplog.at_level("WARNING", logger="dbkit.db.database"):
            dbh.reconnect()
        assert dbh.connected
        assert "Ignoring failed disconnect" in caplog.text


class TestPrepare:
    """prepare and its scoped-block form."""

    def test_prepare_returns_open_statement(self, mock_db):
        sth = mock_db.prepare("select * from people")
        assert isinstance(sth, MockStatement)
        assert not sth.finished
        assert mock_db.last_query == "select * from people"
        assert mock_db.last_statement is sth
        assert id(sth) in mock_db.open_statements

    def test_block_form_finishes_statement(self, mock_db):
        seen = []
        sth = mock_db.prepare("select * from people", lambda s: seen.append(s.execute().rows))
        assert seen == [5]
        assert sth.finished
        assert mock_db.open_statements == {}

    def test_block_form_finishes_on_error(self, mock_db):
        captured = []

        def block(sth):
            captured.append(sth)
            raise KeyError("boom")

        with pytest.raises(KeyError, match="boom"):
            mock_db.prepare("select 1", block)
        assert captured[0].finished
        assert mock_db.open_statements == {}

    def test_context_manager_form(self, mock_db):
        with mock_db.prepare("select 1") as sth:
            sth.execute()
        assert sth.finished


class TestExecute:
    """execute and execute_modification."""

    def test_execute_returns_result(self, mock_db, rows):
        res = mock_db.execute("select * from people where age > ?", 30)
        assert isinstance(res, Result)
        assert res.fetch(ALL) == rows
        assert res.binds == [30]
        assert res.sth is mock_db.last_statement
        assert mock_db.executed == [("select * from people where age > ?", (30,))]

    def test_execute_leaves_statement_open(self, mock_db):
        res = mock_db.execute("select 1")
        assert id(res.sth) in mock_db.open_statements

    def test_execute_block_form(self, mock_db):
        captured = []

        def block(res):
            captured.append(res)
            return res.fetch(2, "Struct")[1].name

        assert mock_db.execute("select * from people", block=block) == "grace"
        with pytest.raises(RuntimeError):
            captured[0].fetch(1)
        assert mock_db.open_statements == {}

    def test_execute_modification(self, mock_db):
        assert mock_db.execute_modification("delete from people where age > ?", 80) == 2
        assert mock_db.last_query == "delete from people where age > ?"
        assert mock_db.last_statement.finished
        assert mock_db.open_statements == {}

    def test_execute_failure_propagates(self):
        dbh = FailingDatabase()
        with pytest.raises(LookupError, match="no such table"):
            dbh.execute("select * from missing")

    def test_modification_failure_still_finishes(self):
        dbh = FailingDatabase()
        with pytest.raises(LookupError):
            dbh.execute_modification("delete from missing")
        assert dbh.last_statement.finished
        assert dbh.open_statements == {}

    def test_preprocess_query_records_last_query(self, mock_db):
        sql = mock_db.preprocess_query(
            "select * from t where a = :x and b = :y", {"x": 1, "y": "it's"}
        )
        assert sql == "select * from t where a = '1' and b = 'it''s'"
        assert mock_db.last_query == "select * from t where a = :x and b = :y"

    def test_preprocess_query_uses_handle_quoter(self, mock_db):
        mock_db.preprocess_quoter = lambda key, names, positional: f"${key}"
        assert mock_db.preprocess_query("select ?, :x", 1, {"x": 2}) == "select $0, $x"


class TestConcurrency:
    """The handle mutex serializes command dispatch."""

    def test_one_command_in_flight(self, people_schema):
        active = []
        overlaps = []

        class SlowStatement(MockStatement):
            def new_execution(self, *binds):
                active.append(self)
                if len(active) > 1:
                    overlaps.append(len(active))
                time.sleep(0.005)
                active.remove(self)
                return [], people_schema

        class SlowDatabase(MockDatabase):
            def new_statement(self, query):
                return SlowStatement(query, self)

        dbh = SlowDatabase()

        def worker():
            for _ in range(5):
                dbh.execute("select 1").finish()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlaps == []
        assert len(dbh.open_statements) == 20

    def test_block_can_reenter_handle(self, mock_db):
        inner = []
        mock_db.prepare("select 1", lambda sth: inner.append(mock_db.execute("select 2")))
        assert inner[0].rows == 5
        assert mock_db.last_query == "select 2"
