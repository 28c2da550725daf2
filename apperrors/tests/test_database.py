import sqlite3
import unittest

from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError, NoResultFound, OperationalError

from apperrors.core.errors import ErrorKind, database_error


class _PgError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.pgcode = code


class _Psycopg3Error(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.sqlstate = code


class TestDatabaseErrorSQLAlchemy(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite://")
        self.conn = self.engine.connect()
        self.conn.execute(text(
            "CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT NOT NULL UNIQUE)"
        ))
        self.conn.execute(text("INSERT INTO users (email) VALUES ('jane@example.com')"))

    def tearDown(self):
        self.conn.close()
        self.engine.dispose()

    def test_no_rows_is_not_found(self):
        with self.assertRaises(NoResultFound) as cm:
            self.conn.execute(text("SELECT id FROM users WHERE email = 'nobody@example.com'")).one()

        err = database_error(cm.exception)
        self.assertIs(err.kind, ErrorKind.NOT_FOUND)
        self.assertEqual(err.status_code, 404)
        self.assertEqual(err.message, "the resource could not be found in the database")

    def test_duplicate_key_is_conflict(self):
        with self.assertRaises(IntegrityError) as cm:
            self.conn.execute(text("INSERT INTO users (email) VALUES ('jane@example.com')"))

        err = database_error(cm.exception)
        self.assertIs(err.kind, ErrorKind.RESOURCE_CONFLICT)
        self.assertEqual(err.status_code, 409)
        self.assertEqual(err.message, "this entry already existed in the database")
        self.assertIs(err.cause, cm.exception)

    def test_other_integrity_error_is_internal(self):
        with self.assertRaises(IntegrityError) as cm:
            self.conn.execute(text("INSERT INTO users (email) VALUES (NULL)"))

        err = database_error(cm.exception)
        self.assertIs(err.kind, ErrorKind.INTERNAL_SERVER)
        self.assertEqual(err.status_code, 500)
        self.assertIs(err.cause, cm.exception)

    def test_operational_error_is_internal(self):
        with self.assertRaises(OperationalError) as cm:
            self.conn.execute(text("SELECT * FROM missing_table"))

        err = database_error(cm.exception)
        self.assertIs(err.kind, ErrorKind.INTERNAL_SERVER)
        self.assertNotIn("missing_table", err.message)


class TestDatabaseErrorDriver(unittest.TestCase):
    def test_raw_sqlite_unique_violation(self):
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("CREATE TABLE tags (name TEXT PRIMARY KEY)")
            conn.execute("INSERT INTO tags VALUES ('a')")
            with self.assertRaises(sqlite3.IntegrityError) as cm:
                conn.execute("INSERT INTO tags VALUES ('a')")
        finally:
            conn.close()

        self.assertIs(database_error(cm.exception).kind, ErrorKind.RESOURCE_CONFLICT)

    def test_postgres_sqlstate(self):
        dup = IntegrityError("INSERT INTO users ...", {}, _PgError("duplicate key value", "23505"))
        self.assertIs(database_error(dup).kind, ErrorKind.RESOURCE_CONFLICT)

        dup3 = IntegrityError("INSERT INTO users ...", {}, _Psycopg3Error("duplicate key value", "23505"))
        self.assertIs(database_error(dup3).kind, ErrorKind.RESOURCE_CONFLICT)

        fk = IntegrityError("INSERT INTO orders ...", {}, _PgError("foreign key violation", "23503"))
        self.assertIs(database_error(fk).kind, ErrorKind.INTERNAL_SERVER)

    def test_unknown_error_is_internal(self):
        cause = TimeoutError("pool exhausted")
        err = database_error(cause)
        self.assertIs(err.kind, ErrorKind.INTERNAL_SERVER)
        self.assertIs(err.cause, cause)
