"""
SQLite database for shops, pricing configurations, print jobs and files.

This module provides a simple SQLite-based persistence layer. Every public
method opens its own connection, so a single PrintDeskDatabase can be shared
across request threads; concurrency control is left to SQLite (WAL mode).
It also serves as the shop directory: the read path for shop and pricing
records consumed by the lifecycle engine.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .models import PaperType, PrintJobStatus, PrintSide, PrintType
from .records import PricingConfigRecord, PrintJobFileRecord, PrintJobRecord, ShopRecord
from .utils import ensure_directory, utcnow

DEFAULT_DB_PATH = Path("data/printdesk.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS shops (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pricing_configs (
    id TEXT PRIMARY KEY,
    shop_id TEXT NOT NULL REFERENCES shops(id),
    paper_type TEXT NOT NULL,
    print_type TEXT NOT NULL,
    single_sided TEXT NOT NULL,
    double_sided TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (shop_id, paper_type, print_type)
);

CREATE TABLE IF NOT EXISTS print_jobs (
    id TEXT PRIMARY KEY,
    shop_id TEXT NOT NULL REFERENCES shops(id),
    token_number TEXT NOT NULL,
    copies INTEGER NOT NULL,
    print_type TEXT NOT NULL,
    paper_type TEXT NOT NULL,
    print_side TEXT NOT NULL,
    specific_pages TEXT NOT NULL DEFAULT '',
    customer_name TEXT NOT NULL DEFAULT '',
    customer_phone TEXT NOT NULL DEFAULT '',
    customer_email TEXT NOT NULL DEFAULT '',
    total_pages INTEGER NOT NULL,
    total_cost TEXT,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_print_jobs_shop_created
ON print_jobs(shop_id, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_print_jobs_token
ON print_jobs(token_number);

CREATE TABLE IF NOT EXISTS print_job_files (
    id TEXT PRIMARY KEY,
    print_job_id TEXT NOT NULL REFERENCES print_jobs(id),
    file_name TEXT NOT NULL,
    storage_path TEXT NOT NULL,
    file_url TEXT NOT NULL,
    url_issued_at TEXT NOT NULL,
    file_type TEXT NOT NULL,
    pages INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_print_job_files_job
ON print_job_files(print_job_id);
"""


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat(timespec="microseconds") if dt else None


def _deserialize_datetime(s: str) -> datetime:
    return datetime.fromisoformat(s)


def _serialize_decimal(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


class PrintDeskDatabase:
    """
    SQLite database for print shop persistence.

    Thread-safe: SQLite handles concurrent access with WAL mode.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        ensure_directory(self.db_path.parent)
        self._init_db()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)

    # Shops

    def insert_shop(self, shop: ShopRecord) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO shops (id, name, created_at) VALUES (?, ?, ?)",
                (shop.id, shop.name, _serialize_datetime(shop.created_at)),
            )

    def get_shop(self, shop_id: str) -> Optional[ShopRecord]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM shops WHERE id = ?", (shop_id,)).fetchone()
        if not row:
            return None
        return ShopRecord(id=row["id"], name=row["name"], created_at=_deserialize_datetime(row["created_at"]))

    # Pricing configurations

    def insert_pricing_config(self, config: PricingConfigRecord) -> None:
        """
        Insert a pricing row.

        Raises:
            sqlite3.IntegrityError: If the (shop, paper, print) triple exists
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO pricing_configs (
                    id, shop_id, paper_type, print_type,
                    single_sided, double_sided, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    config.id,
                    config.shop_id,
                    config.paper_type.value,
                    config.print_type.value,
                    _serialize_decimal(config.single_sided),
                    _serialize_decimal(config.double_sided),
                    _serialize_datetime(config.created_at),
                    _serialize_datetime(config.updated_at),
                ),
            )

    def get_pricing_config(self, config_id: str) -> Optional[PricingConfigRecord]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM pricing_configs WHERE id = ?", (config_id,)).fetchone()
        return self._row_to_pricing(row) if row else None

    def find_pricing_config(
        self,
        shop_id: str,
        paper_type: PaperType,
        print_type: PrintType,
        exclude_id: Optional[str] = None,
    ) -> Optional[PricingConfigRecord]:
        """
        Find the pricing row for a shop and medium.

        Args:
            shop_id: Owning shop
            paper_type: Paper size of the medium
            print_type: Color mode of the medium
            exclude_id: Ignore this row (used for collision checks on update)

        Returns:
            The matching record or None
        """
        query = "SELECT * FROM pricing_configs WHERE shop_id = ? AND paper_type = ? AND print_type = ?"
        params: List[str] = [shop_id, paper_type.value, print_type.value]
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        with self._get_connection() as conn:
            row = conn.execute(query, params).fetchone()
        return self._row_to_pricing(row) if row else None

    def list_pricing_configs(self, shop_id: str) -> List[PricingConfigRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM pricing_configs WHERE shop_id = ? ORDER BY paper_type ASC, print_type ASC",
                (shop_id,),
            ).fetchall()
        return [self._row_to_pricing(row) for row in rows]

    def update_pricing_config(self, config: PricingConfigRecord) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE pricing_configs
                SET paper_type = ?, print_type = ?, single_sided = ?, double_sided = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    config.paper_type.value,
                    config.print_type.value,
                    _serialize_decimal(config.single_sided),
                    _serialize_decimal(config.double_sided),
                    _serialize_datetime(config.updated_at),
                    config.id,
                ),
            )

    def delete_pricing_config(self, config_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM pricing_configs WHERE id = ?", (config_id,))
            return cursor.rowcount > 0

    # Print jobs

    def insert_job(self, job: PrintJobRecord) -> None:
        """
        Insert a print job row (files are inserted separately).

        Args:
            job: The job record; ``files`` is ignored
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO print_jobs (
                    id, shop_id, token_number, copies, print_type, paper_type,
                    print_side, specific_pages, customer_name, customer_phone,
                    customer_email, total_pages, total_cost, status,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job.id,
                    job.shop_id,
                    job.token_number,
                    job.copies,
                    job.print_type.value,
                    job.paper_type.value,
                    job.print_side.value,
                    job.specific_pages,
                    job.customer_name,
                    job.customer_phone,
                    job.customer_email,
                    job.total_pages,
                    _serialize_decimal(job.total_cost),
                    job.status.value,
                    _serialize_datetime(job.created_at),
                    _serialize_datetime(job.updated_at),
                ),
            )

    def update_job_cost(self, job_id: str, total_cost: Decimal) -> datetime:
        updated_at = utcnow()
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE print_jobs SET total_cost = ?, updated_at = ? WHERE id = ?",
                (_serialize_decimal(total_cost), _serialize_datetime(updated_at), job_id),
            )
        return updated_at

    def update_job_status(
        self, job_id: str, status: PrintJobStatus, expected: PrintJobStatus
    ) -> Optional[datetime]:
        """
        Compare-and-set the job status.

        Returns:
            The new updated_at, or None when the stored status is no longer
            ``expected`` (or the job is gone)
        """
        updated_at = utcnow()
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE print_jobs SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (status.value, _serialize_datetime(updated_at), job_id, expected.value),
            )
            if cursor.rowcount == 0:
                return None
        return updated_at

    def get_job(self, job_id: str, include_files: bool = True) -> Optional[PrintJobRecord]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM print_jobs WHERE id = ?", (job_id,)).fetchone()
            if not row:
                return None
            job = self._row_to_job(row)
            if include_files:
                job.files = self._files_for(conn, [job.id]).get(job.id, [])
        return job

    def get_job_by_token(self, token_number: str) -> Optional[PrintJobRecord]:
        """
        Retrieve a job by its token number (without files).

        Token numbers are not guaranteed unique; the newest match wins.
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM print_jobs WHERE token_number = ? ORDER BY created_at DESC LIMIT 1",
                (token_number,),
            ).fetchone()
        return self._row_to_job(row) if row else None

    def list_jobs(self, shop_id: str, status: Optional[PrintJobStatus] = None) -> List[PrintJobRecord]:
        """
        List a shop's jobs with their files, newest first.

        Args:
            shop_id: Owning shop
            status: Optional status filter
        """
        query = "SELECT * FROM print_jobs WHERE shop_id = ?"
        params: List[str] = [shop_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC"

        with self._get_connection() as conn:
            jobs = [self._row_to_job(row) for row in conn.execute(query, params).fetchall()]
            files_by_job = self._files_for(conn, [job.id for job in jobs])
        for job in jobs:
            job.files = files_by_job.get(job.id, [])
        return jobs

    # Print job files

    def insert_file(self, file: PrintJobFileRecord) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO print_job_files (
                    id, print_job_id, file_name, storage_path, file_url,
                    url_issued_at, file_type, pages, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    file.id,
                    file.print_job_id,
                    file.file_name,
                    file.storage_path,
                    file.file_url,
                    _serialize_datetime(file.url_issued_at),
                    file.file_type,
                    file.pages,
                    _serialize_datetime(file.created_at),
                    _serialize_datetime(file.updated_at),
                ),
            )

    def update_file_url(self, file_id: str, file_url: str, issued_at: datetime) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE print_job_files SET file_url = ?, url_issued_at = ?, updated_at = ? WHERE id = ?",
                (file_url, _serialize_datetime(issued_at), _serialize_datetime(issued_at), file_id),
            )

    def _files_for(self, conn: sqlite3.Connection, job_ids: Sequence[str]) -> Dict[str, List[PrintJobFileRecord]]:
        if not job_ids:
            return {}
        placeholders = ", ".join("?" for _ in job_ids)
        rows = conn.execute(
            f"SELECT * FROM print_job_files WHERE print_job_id IN ({placeholders}) ORDER BY created_at ASC, rowid ASC",
            list(job_ids),
        ).fetchall()
        files: Dict[str, List[PrintJobFileRecord]] = {}
        for row in rows:
            files.setdefault(row["print_job_id"], []).append(self._row_to_file(row))
        return files

    def _row_to_pricing(self, row: sqlite3.Row) -> PricingConfigRecord:
        return PricingConfigRecord(
            id=row["id"],
            shop_id=row["shop_id"],
            paper_type=PaperType(row["paper_type"]),
            print_type=PrintType(row["print_type"]),
            single_sided=Decimal(row["single_sided"]),
            double_sided=Decimal(row["double_sided"]),
            created_at=_deserialize_datetime(row["created_at"]),
            updated_at=_deserialize_datetime(row["updated_at"]),
        )

    def _row_to_job(self, row: sqlite3.Row) -> PrintJobRecord:
        return PrintJobRecord(
            id=row["id"],
            shop_id=row["shop_id"],
            token_number=row["token_number"],
            copies=row["copies"],
            print_type=PrintType(row["print_type"]),
            paper_type=PaperType(row["paper_type"]),
            print_side=PrintSide(row["print_side"]),
            specific_pages=row["specific_pages"],
            customer_name=row["customer_name"],
            customer_phone=row["customer_phone"],
            customer_email=row["customer_email"],
            total_pages=row["total_pages"],
            total_cost=Decimal(row["total_cost"]) if row["total_cost"] is not None else None,
            status=PrintJobStatus(row["status"]),
            created_at=_deserialize_datetime(row["created_at"]),
            updated_at=_deserialize_datetime(row["updated_at"]),
        )

    def _row_to_file(self, row: sqlite3.Row) -> PrintJobFileRecord:
        return PrintJobFileRecord(
            id=row["id"],
            print_job_id=row["print_job_id"],
            file_name=row["file_name"],
            storage_path=row["storage_path"],
            file_url=row["file_url"],
            url_issued_at=_deserialize_datetime(row["url_issued_at"]),
            file_type=row["file_type"],
            pages=row["pages"],
            created_at=_deserialize_datetime(row["created_at"]),
            updated_at=_deserialize_datetime(row["updated_at"]),
        )
