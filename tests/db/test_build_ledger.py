"""Tests for the schema bootstrap and CSV import helpers."""

import sqlite3
import sys
from pathlib import Path

import pandas as pd
import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT))

from database import build_ledger as bl


def _export_frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Series": "Berserk",
                "Author": "Kentaro Miura",
                "Status": "Reading",
                "Total Volumes": 3,
                "Retail Price": "10,50",
                "Volume": 1,
                "Owned": "yes",
                "Read": "yes",
                "Price Paid": 9,
                "Store": "Amazon",
                "Condition": "Like New",
            },
            {"Series": "Berserk", "Volume": 2, "Owned": "no", "Read": "yes"},
            {"Series": "Berserk", "Volume": "x", "Owned": "yes"},
            {
                "Series": " Monster ",
                "Status": "Completed",
                "Total Volumes": 18,
                "Volume": 1,
                "Owned": "1",
            },
            {"Series": "", "Volume": 1, "Owned": "yes"},
            {"Series": "berserk", "Volume": 1, "Owned": "yes"},
        ]
    )


def test_parse_optional_number_handles_locales_and_blanks():
    assert bl.parse_optional_number("12,5") == pytest.approx(12.5)
    assert bl.parse_optional_number(" ") is None
    assert bl.parse_optional_number(float("nan")) is None
    assert bl.parse_optional_number("abc") is None
    assert bl.parse_optional_number(7) == 7
    assert bl.parse_optional_number("inf") is None
    assert bl.parse_optional_number("1e400") is None
    assert bl.parse_optional_number(float("-inf")) is None


def test_parse_volume_number_requires_positive_integers():
    assert bl.parse_volume_number(3.0) == 3
    assert bl.parse_volume_number("4") == 4
    assert bl.parse_volume_number("2.5") is None
    assert bl.parse_volume_number(0) is None
    assert bl.parse_volume_number(None) is None
    assert bl.parse_volume_number("inf") is None


def test_parse_flag_spreadsheet_values():
    assert bl.parse_flag("Yes")
    assert bl.parse_flag("x")
    assert bl.parse_flag(1.0)
    assert not bl.parse_flag("no")
    assert not bl.parse_flag(0)
    assert not bl.parse_flag(float("nan"))


def test_parse_enum_accepts_labels():
    assert bl.parse_enum("Like New", bl.schemas.Condition) is bl.schemas.Condition.LIKE_NEW
    assert bl.parse_enum("casa del libro", bl.schemas.Store) is bl.schemas.Store.CASA_DEL_LIBRO
    assert bl.parse_enum("plan-to-read", bl.schemas.SeriesStatus) is (
        bl.schemas.SeriesStatus.PLAN_TO_READ
    )
    assert bl.parse_enum("Comic shop", bl.schemas.Store) is None
    assert bl.parse_enum(float("nan"), bl.schemas.Store) is None


def test_describe_row_and_log_row_skip(caplog):
    row = pd.Series({"Series": "Test", "Volume": 4})
    row.name = 3
    assert bl.describe_row(row) == "index=3, Series=Test, Volume=4"

    with caplog.at_level("WARNING"):
        bl.log_row_skip("volumes", row, "missing data")
    assert "volumes: skipped index=3, Series=Test, Volume=4 - missing data" in caplog.text

    caplog.clear()
    with caplog.at_level("WARNING"):
        bl.log_row_skip("volumes", row, "boom", ValueError("bad"))
    assert "(boom) - bad" in caplog.text


def test_apply_migrations_requires_config(monkeypatch, tmp_path):
    """apply_migrations raises when the Alembic ini file is missing."""
    monkeypatch.setattr(bl, "ALEMBIC_INI_PATH", tmp_path / "missing.ini")
    with pytest.raises(FileNotFoundError):
        bl.apply_migrations(tmp_path / "db.sqlite")


def test_apply_migrations_invokes_alembic(monkeypatch, tmp_path):
    """apply_migrations wires up the alembic upgrade call."""
    cfg_path = tmp_path / "alembic.ini"
    cfg_path.write_text("[alembic]\n")
    monkeypatch.setattr(bl, "ALEMBIC_INI_PATH", cfg_path)

    called = {}

    def fake_upgrade(cfg, target):
        called["cfg"] = cfg
        called["target"] = target

    monkeypatch.setattr(bl.command, "upgrade", fake_upgrade)
    db_path = tmp_path / "ledger.db"
    bl.apply_migrations(db_path)
    assert called["target"] == "head"
    assert called["cfg"].get_main_option("sqlalchemy.url") == f"sqlite:///{db_path}"


def test_migration_builds_ledger_schema(monkeypatch, tmp_path):
    monkeypatch.setattr(bl, "ALEMBIC_INI_PATH", REPO_ROOT / "alembic.ini")
    db_path = tmp_path / "ledger.db"
    bl.apply_migrations(db_path)

    conn = sqlite3.connect(db_path)
    try:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"users", "series", "volumes"} <= tables

        conn.execute(
            "INSERT INTO users (id, email, created_at) VALUES ('u', 'u@example.com', 'now')"
        )
        conn.execute(
            """
            INSERT INTO series (user_id, title, created_at, updated_at)
            VALUES ('u', 'Akira', 'now', 'now')
            """
        )
        conn.execute(
            """
            INSERT INTO volumes (series_id, volume_number, created_at, updated_at)
            VALUES (1, 1, 'now', 'now')
            """
        )
        row = conn.execute(
            "SELECT owned, read, condition FROM volumes WHERE series_id = 1"
        ).fetchone()
        assert row == (0, 0, "NEW")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                """
                INSERT INTO volumes (series_id, volume_number, created_at, updated_at)
                VALUES (1, 1, 'now', 'now')
                """
            )
    finally:
        conn.close()


def test_import_collection_inserts_and_skips(sqlite_conn, caplog):
    with caplog.at_level("WARNING"):
        series_count, volume_count = bl.import_collection(
            sqlite_conn, _export_frame(), "user-1"
        )

    assert series_count == 2
    assert volume_count == 2

    series = sqlite_conn.execute(
        "SELECT title, author, status, total_volumes, retail_price FROM series ORDER BY title"
    ).fetchall()
    assert series == [
        ("Berserk", "Kentaro Miura", "READING", 3, 10.5),
        ("Monster", None, "COMPLETED", 18, None),
    ]

    volumes = sqlite_conn.execute(
        """
        SELECT s.title, v.volume_number, v.owned, v.read, v.price_paid, v.store,
               v.condition, v.purchase_date IS NOT NULL, v.read_date IS NOT NULL
        FROM volumes AS v JOIN series AS s ON s.series_id = v.series_id
        ORDER BY s.title, v.volume_number
        """
    ).fetchall()
    assert volumes == [
        ("Berserk", 1, 1, 1, 9.0, "AMAZON", "LIKE_NEW", 1, 1),
        ("Monster", 1, 1, 0, None, None, "NEW", 1, 0),
    ]

    assert "read but not owned" in caplog.text
    assert "missing or invalid volume number" in caplog.text
    assert "missing series title" in caplog.text
    assert "UNIQUE constraint failed" in caplog.text


def test_import_collection_is_repeatable(sqlite_conn):
    bl.import_collection(sqlite_conn, _export_frame(), "user-1")
    series_count, volume_count = bl.import_collection(
        sqlite_conn, _export_frame(), "user-1"
    )
    assert series_count == 2
    assert volume_count == 0
    assert sqlite_conn.execute("SELECT COUNT(*) FROM series").fetchone() == (2,)


def test_import_skips_non_finite_numbers(sqlite_conn, caplog):
    frame = pd.DataFrame(
        [
            {"Series": "Pluto", "Total Volumes": "1e400", "Volume": 1, "Owned": "yes"},
            {"Series": "Pluto", "Volume": "inf", "Owned": "yes"},
        ]
    )
    with caplog.at_level("WARNING"):
        series_count, volume_count = bl.import_collection(sqlite_conn, frame, "user-1")

    assert (series_count, volume_count) == (1, 1)
    assert sqlite_conn.execute(
        "SELECT title, total_volumes FROM series"
    ).fetchall() == [("Pluto", None)]
    assert "Volume=inf" in caplog.text
    assert "missing or invalid volume number" in caplog.text


def test_rerun_matches_accented_titles(sqlite_conn):
    frame = pd.DataFrame(
        [
            {"Series": "École du Manga", "Volume": 1, "Owned": "yes"},
            {"Series": "ÉCOLE DU MANGA", "Volume": 2, "Owned": "yes"},
        ]
    )
    assert bl.import_collection(sqlite_conn, frame, "user-1") == (1, 2)
    assert bl.import_collection(sqlite_conn, frame, "user-1") == (1, 0)
    assert sqlite_conn.execute("SELECT COUNT(*) FROM series").fetchone() == (1,)


def test_import_counts_only_series_in_the_export(sqlite_conn):
    bl.import_collection(sqlite_conn, _export_frame(), "user-1")
    frame = pd.DataFrame([{"Series": "MONSTER", "Volume": 2, "Owned": "yes"}])
    assert bl.import_collection(sqlite_conn, frame, "user-1") == (1, 1)
