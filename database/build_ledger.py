"""Create or upgrade the ledger database and import a CSV collection export.

The export has one row per volume::

    Series,Author,Status,Total Volumes,Retail Price,Volume,Owned,Read,Price Paid,Store,Condition

Series are matched by title for the importing user and created on first
sight; volumes already present in a series are skipped.
"""

import logging
import math
import os
import sqlite3
from enum import Enum
from pathlib import Path
from typing import Any, Optional, TypeVar

import pandas as pd
from alembic.config import Config

from alembic import command
from app import schemas
from app.errors import ValidationFailed
from app.ledger import reconcile_flags, utcnow

logger = logging.getLogger(__name__)

CSV_PATH = Path("./data/collection_export.csv")
DB_PATH = Path("manga_ledger.db")
ALEMBIC_INI_PATH = Path("alembic.ini")
USER_ID_ENV_VAR = "MANGA_IMPORT_USER_ID"
USER_EMAIL_ENV_VAR = "MANGA_IMPORT_USER_EMAIL"

_TRUE_FLAGS = {"1", "true", "yes", "y", "x", "si", "sí"}

EnumT = TypeVar("EnumT", bound=Enum)


def parse_optional_number(value: Any) -> int | float | None:
    """Try to coerce a value to a numeric type, return None if that fails."""
    if value is None:
        return None

    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return None

    if pd.isna(value):
        return None

    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None

    # "inf" and overflowing literals parse as floats but fit no column
    if isinstance(number, float) and not math.isfinite(number):
        return None
    return number


def parse_volume_number(value: Any) -> int | None:
    """Volume numbers are positive integers; 3.0 becomes 3, 2.5 is rejected."""
    number = parse_optional_number(value)
    if number is None or float(number) != int(number) or int(number) < 1:
        return None
    return int(number)


def parse_flag(value: Any) -> bool:
    """Spreadsheet truthiness: yes/x/true or any non-zero number."""
    text = normalize_text(value).lower()
    if text in _TRUE_FLAGS:
        return True
    return bool(parse_optional_number(text))


def normalize_text(value) -> str:
    """Coerce NaN and None to an empty string and strip whitespace."""
    if value is None or pd.isna(value):
        return ""
    return str(value).strip()


def parse_enum(value: Any, enum_cls: type[EnumT]) -> EnumT | None:
    """Accept either the member name or a human label ("Like New")."""
    text = normalize_text(value)
    if not text:
        return None
    key = text.upper().replace(" ", "_").replace("-", "_")
    try:
        return enum_cls(key)
    except ValueError:
        return None


def describe_row(row: pd.Series) -> str:
    """Build a short human readable description for log output."""
    series = normalize_text(row.get("Series"))
    volume = normalize_text(row.get("Volume"))
    details = [f"index={row.name}"]
    if series:
        details.append(f"Series={series}")
    if volume:
        details.append(f"Volume={volume}")
    return ", ".join(details)


def log_row_skip(
    stage: str, row: pd.Series, reason: str, error: Optional[Exception] = None
) -> None:
    """
    Emit a warning when a row is not inserted into the database.
    """
    context = describe_row(row)
    if error:
        logger.warning("%s: skipped %s (%s) - %s", stage, context, reason, error)
    else:
        logger.warning("%s: skipped %s - %s", stage, context, reason)


def apply_migrations(db_path: Path) -> None:
    """
    Build or update the SQLite schema using Alembic migrations.
    """
    if not ALEMBIC_INI_PATH.exists():
        raise FileNotFoundError(
            f"Alembic configuration not found at {ALEMBIC_INI_PATH}"
        )

    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    alembic_cfg.attributes["configure_logger"] = False

    logger.info("Applying Alembic migrations to %s", db_path)
    command.upgrade(alembic_cfg, "head")


def load_csv() -> pd.DataFrame:
    logger.info("Loading CSV from %s", CSV_PATH)
    df = pd.read_csv(CSV_PATH)
    logger.info("Loaded %d records from CSV", len(df))
    return df


def prepare_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Add the normalized key columns the populate steps rely on."""
    df = df.copy()
    df["SeriesNorm"] = df["Series"].apply(normalize_text)
    df["VolumeNorm"] = df["Volume"].apply(parse_volume_number).astype(object)
    return df


def ensure_import_user(conn: sqlite3.Connection, user_id: str, email: str) -> None:
    conn.execute(
        """
        INSERT OR IGNORE INTO users (id, email, name, avatar_url, created_at)
        VALUES (?, ?, NULL, NULL, ?)
        """,
        (user_id, email, utcnow()),
    )
    conn.commit()


def series_key(title: str) -> str:
    """Case-insensitive identity of a series title, accents included."""
    return title.casefold()


def populate_series(
    conn: sqlite3.Connection, df: pd.DataFrame, user_id: str
) -> dict[str, int]:
    """Create one series per distinct title, reusing the user's existing ones."""
    inserted = 0
    skipped = 0
    cursor = conn.cursor()
    # SQLite lower() only folds ASCII, so existing titles are keyed here
    existing = cursor.execute(
        "SELECT title, series_id FROM series WHERE user_id = ?", (user_id,)
    ).fetchall()
    existing_ids = {series_key(title): series_id for title, series_id in existing}
    series_map: dict[str, int] = {}

    for _, row in df.iterrows():
        title = row["SeriesNorm"]
        if not title:
            skipped += 1
            log_row_skip("series", row, "missing series title")
            continue
        key = series_key(title)
        if key in series_map:
            continue
        if key in existing_ids:
            series_map[key] = existing_ids[key]
            continue

        total_volumes = parse_optional_number(row.get("Total Volumes"))
        status = parse_enum(row.get("Status"), schemas.SeriesStatus)
        now = utcnow()
        try:
            cursor.execute(
                """
                INSERT INTO series (
                    user_id, title, author, status, publishing, total_volumes,
                    retail_price, created_at, updated_at
                ) VALUES (?, ?, ?, ?, 0, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    title,
                    normalize_text(row.get("Author")) or None,
                    (status or schemas.SeriesStatus.READING).value,
                    int(total_volumes) if total_volumes is not None else None,
                    parse_optional_number(row.get("Retail Price")),
                    now,
                    now,
                ),
            )
        except sqlite3.IntegrityError as exc:
            skipped += 1
            log_row_skip("series", row, "constraint violation while inserting series", exc)
            continue

        series_map[key] = cursor.lastrowid
        inserted += 1

    conn.commit()
    logger.info("Inserted %d series rows (skipped %d)", inserted, skipped)
    return series_map


def populate_volumes(
    conn: sqlite3.Connection, df: pd.DataFrame, series_map: dict[str, int]
) -> int:
    """Insert one volume per row, keeping the owned/read invariants."""
    inserted = 0
    skipped = 0
    cursor = conn.cursor()
    blank = {"owned": False, "read": False, "purchase_date": None, "read_date": None}

    for _, row in df.iterrows():
        series_id = series_map.get(series_key(row["SeriesNorm"]))
        if series_id is None:
            continue
        volume_number = row["VolumeNorm"]
        if volume_number is None or pd.isna(volume_number):
            skipped += 1
            log_row_skip("volumes", row, "missing or invalid volume number")
            continue

        now = utcnow()
        try:
            flags = reconcile_flags(
                blank,
                {"owned": parse_flag(row.get("Owned")), "read": parse_flag(row.get("Read"))},
                now,
            )
        except ValidationFailed as exc:
            skipped += 1
            log_row_skip("volumes", row, "read but not owned", exc)
            continue

        condition = parse_enum(row.get("Condition"), schemas.Condition)
        store = parse_enum(row.get("Store"), schemas.Store)
        try:
            cursor.execute(
                """
                INSERT INTO volumes (
                    series_id, volume_number, owned, read, price_paid, condition,
                    store, purchase_date, read_date, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    series_id,
                    int(volume_number),
                    flags["owned"],
                    flags["read"],
                    parse_optional_number(row.get("Price Paid")),
                    (condition or schemas.Condition.NEW).value,
                    store.value if store else None,
                    flags["purchase_date"],
                    flags["read_date"],
                    now,
                    now,
                ),
            )
        except sqlite3.IntegrityError as exc:
            skipped += 1
            log_row_skip("volumes", row, str(exc))
            continue

        inserted += 1

    conn.commit()
    logger.info("Inserted %d volume rows (skipped %d)", inserted, skipped)
    return inserted


def import_collection(
    conn: sqlite3.Connection, df: pd.DataFrame, user_id: str
) -> tuple[int, int]:
    """Import an export frame for an existing user.

    Returns the number of series touched and volumes inserted.
    """
    frame = prepare_frame(df)
    series_map = populate_series(conn, frame, user_id)
    volumes = populate_volumes(conn, frame, series_map)
    return len(series_map), volumes


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    apply_migrations(DB_PATH)
    if not CSV_PATH.exists():
        logger.info("No CSV export at %s, schema only", CSV_PATH)
        return

    user_id = os.environ.get(USER_ID_ENV_VAR)
    email = os.environ.get(USER_EMAIL_ENV_VAR)
    if not user_id or not email:
        raise RuntimeError(
            f"{USER_ID_ENV_VAR} and {USER_EMAIL_ENV_VAR} must be set to import a collection"
        )

    logger.info("Importing collection from %s for %s", CSV_PATH, user_id)
    df = load_csv()
    conn = sqlite3.connect(DB_PATH)
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        ensure_import_user(conn, user_id, email)
        import_collection(conn, df, user_id)
    finally:
        conn.close()

    logger.info("Database ready at %s", DB_PATH.resolve())


if __name__ == "__main__":
    main()
