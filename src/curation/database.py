import json
import sqlite3
import uuid
from pathlib import Path
from datetime import datetime
from typing import Iterable

from .errors import InvalidTransitionError
from .models import CurationStatus, ExternalImage, QueueItem


def adapt_datetime(dt: datetime) -> str:
    return dt.isoformat()


def convert_datetime(val: bytes) -> datetime:
    return datetime.fromisoformat(val.decode())


# Register adapters and converters for Python 3.12+ compatibility
sqlite3.register_adapter(datetime, adapt_datetime)
sqlite3.register_converter("TIMESTAMP", convert_datetime)
sqlite3.register_converter("timestamp", convert_datetime)

JSON_COLUMNS = {"content_tags", "source_tags"}
ENUM_COLUMNS = {"status", "age_rating"}
ORDER_COLUMNS = {"created_at", "quality_score", "processed_at"}
UPDATABLE_COLUMNS = {
    "status", "age_rating", "quality_score", "content_tags", "description",
    "gender", "species", "generated_char_id", "rejection_reason",
    "processed_at", "rejected_at",
}


def _to_db_value(column: str, value):
    if value is None:
        return None
    if column in JSON_COLUMNS:
        return json.dumps([getattr(v, "value", v) for v in value])
    if column in ENUM_COLUMNS:
        return getattr(value, "value", value)
    return value


def _row_to_item(row: sqlite3.Row) -> QueueItem:
    data = dict(row)
    for column in JSON_COLUMNS:
        data[column] = json.loads(data[column]) if data[column] else []
    return QueueItem(**data)


class CurationDB:
    """SQLite record store for curated images."""

    def __init__(self, db_path: Path):
        """Initialize SQLite, create table if not exists."""
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, detect_types=sqlite3.PARSE_DECLTYPES)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS curated_images (
                    id TEXT PRIMARY KEY,
                    source_url TEXT NOT NULL UNIQUE,
                    source_id TEXT,
                    source_platform TEXT NOT NULL,
                    status TEXT NOT NULL,
                    age_rating TEXT,
                    quality_score REAL,
                    content_tags TEXT NOT NULL DEFAULT '[]',
                    source_tags TEXT NOT NULL DEFAULT '[]',
                    description TEXT,
                    source_rating REAL,
                    author TEXT,
                    gender TEXT,
                    species TEXT,
                    generated_char_id TEXT,
                    rejection_reason TEXT,
                    processed_at TIMESTAMP,
                    rejected_at TIMESTAMP,
                    created_at TIMESTAMP NOT NULL
                );
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_curated_images_status ON curated_images (status, created_at)"
            )

    def find_by_source_url(self, source_url: str) -> QueueItem | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM curated_images WHERE source_url = ?",
                (source_url,)
            ).fetchone()
            return _row_to_item(row) if row else None

    def get(self, item_id: str) -> QueueItem | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM curated_images WHERE id = ?",
                (item_id,)
            ).fetchone()
            return _row_to_item(row) if row else None

    def create_or_get(self, image: ExternalImage, source_platform: str) -> tuple[QueueItem, bool]:
        """
        Insert a PENDING record for `image`, or fetch the existing one.

        Returns:
            (item, created) where created is False if source_url already existed
        """
        item_id = uuid.uuid4().hex
        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO curated_images
                    (id, source_url, source_id, source_platform, status,
                     content_tags, source_tags, source_rating, author, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item_id,
                        image.url,
                        image.id,
                        source_platform,
                        CurationStatus.PENDING.value,
                        "[]",
                        _to_db_value("source_tags", image.tags),
                        image.rating,
                        image.author,
                        datetime.now(),
                    )
                )
            except sqlite3.IntegrityError:
                # source_url already present
                pass
        item = self.find_by_source_url(image.url)
        return item, item is not None and item.id == item_id

    def list_by_status(
        self,
        statuses: Iterable[CurationStatus],
        order_by: str = "created_at",
        descending: bool = False,
        limit: int | None = None,
        unconverted_only: bool = False,
    ) -> list[QueueItem]:
        """
        Get records filtered by status.

        Args:
            statuses: Statuses to include
            order_by: One of created_at, quality_score, processed_at
            descending: Sort direction
            limit: Optional maximum number of records
            unconverted_only: Only records without a generated character
        """
        if order_by not in ORDER_COLUMNS:
            raise ValueError(f"Unsupported order column: {order_by}")
        statuses = [CurationStatus(s).value for s in statuses]
        if not statuses:
            return []

        query = f"SELECT * FROM curated_images WHERE status IN ({', '.join('?' * len(statuses))})"
        params: list = list(statuses)

        if unconverted_only:
            query += " AND generated_char_id IS NULL"

        direction = "DESC" if descending else "ASC"
        query += f" ORDER BY {order_by} {direction}, rowid ASC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return [_row_to_item(row) for row in rows]

    def update(self, item_id: str, **fields) -> QueueItem | None:
        """Update columns by id, returns the updated record (None if missing)."""
        self._update(item_id, None, fields)
        return self.get(item_id)

    def transition(
        self,
        item_id: str,
        from_statuses: Iterable[CurationStatus],
        to_status: CurationStatus,
        **fields,
    ) -> QueueItem:
        """
        Compare-and-swap status change: only applied while the record is in
        one of `from_statuses`, so each transition takes effect at most once.
        """
        allowed = [CurationStatus(s) for s in from_statuses]
        if not allowed:
            raise ValueError("At least one source status is required")
        fields["status"] = to_status
        if self._update(item_id, allowed, fields) == 0:
            current = self.get(item_id)
            raise InvalidTransitionError(item_id, current.status if current else None, to_status)
        return self.get(item_id)

    def _update(self, item_id: str, from_statuses, fields: dict) -> int:
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")
        if not fields:
            return 0

        assignments = ", ".join(f"{column} = ?" for column in fields)
        params = [_to_db_value(column, value) for column, value in fields.items()]
        query = f"UPDATE curated_images SET {assignments} WHERE id = ?"
        params.append(item_id)

        if from_statuses is not None:
            query += f" AND status IN ({', '.join('?' * len(from_statuses))})"
            params.extend(s.value for s in from_statuses)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return cursor.rowcount

    def count_by_status(self, status: CurationStatus) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM curated_images WHERE status = ?",
                (CurationStatus(status).value,)
            ).fetchone()
            return row[0]

    def set_generated_character(self, item_id: str, character_id: str) -> QueueItem:
        """Record that an APPROVED image was converted into a character."""
        return self.transition(
            item_id,
            [CurationStatus.APPROVED],
            CurationStatus.COMPLETED,
            generated_char_id=character_id,
        )
