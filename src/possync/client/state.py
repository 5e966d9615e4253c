"""Local store for the POS terminal.

This module provides:
- LocalStore: SQLite-backed record of products, sales and sync checkpoints
- Product, Sale, SyncProgress: row dataclasses

Architecture:
    The store is the single owner of persisted state. Controllers never keep
    copies of rows between calls; every sync-field mutation is a single
    UPDATE statement so that a crash or a concurrent reader never observes a
    half-applied transition.

    Money columns are stored as TEXT and read back as Decimal so that
    amounts round-trip exactly.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from possync.core.errors import ValidationError
from possync.core.types import SaleSyncStatus

logger = logging.getLogger(__name__)

PRODUCT_SYNC_SOURCE = "product_sync"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Convert a number or numeric string to Decimal.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"{field_name} is not a number: {value!r}") from e
    if not result.is_finite():
        raise ValidationError(f"{field_name} is not a finite number: {value!r}")
    return result


def _iso(value: datetime) -> str:
    # Fixed-width UTC text so that string order matches time order in SQL.
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Product:
    """Catalog entry cached from the remote server.

    Attributes:
        id: Stable remote identifier.
        name: Display name.
        price: Selling price.
        category: Category identifier or name.
        code: Scannable code (barcode/SKU), if any.
        raw_response: Original JSON payload, kept for forward compatibility.
    """

    id: str
    name: str
    price: Decimal
    category: str
    code: str | None = None
    raw_response: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Product:
        """Create Product from database row."""
        return cls(
            id=row["id"],
            name=row["name"],
            price=Decimal(row["price"]),
            category=row["category"],
            code=row["code"],
            raw_response=row["raw_response"],
        )

    def to_params(self) -> dict[str, Any]:
        """Parameters for the upsert statement."""
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "category": self.category,
            "code": self.code,
            "raw_response": self.raw_response,
        }


@dataclass
class SyncProgress:
    """Checkpoint of a paginated catalog pull.

    Attributes:
        current_page: Last page committed locally (0 before the first page).
        last_page: Last page reported by the server, None until known.
        is_completed: True once the last page has been committed.
        last_sync_at: Time of the last committed page.
        total_products: Products ingested so far.
        source: Checkpoint identifier.
    """

    current_page: int = 0
    last_page: int | None = None
    is_completed: bool = False
    last_sync_at: datetime | None = None
    total_products: int = 0
    source: str = PRODUCT_SYNC_SOURCE

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SyncProgress:
        """Create SyncProgress from database row."""
        return cls(
            current_page=row["current_page"],
            last_page=row["last_page"],
            is_completed=bool(row["is_completed"]),
            last_sync_at=_parse_dt(row["last_sync_at"]),
            total_products=row["total_products"],
            source=row["source"],
        )

    def validate(self) -> None:
        """Check the checkpoint invariants.

        Raises:
            ValueError: If page counters are inconsistent.
        """
        if self.current_page < 0:
            raise ValueError("current_page must be >= 0")
        if self.total_products < 0:
            raise ValueError("total_products must be >= 0")
        if self.last_page is not None and self.last_page < self.current_page:
            raise ValueError("last_page must be >= current_page")
        if self.last_page is not None and self.last_page < 1:
            raise ValueError("last_page must be >= 1")
        if self.is_completed and self.current_page != self.last_page:
            raise ValueError("is_completed requires current_page == last_page")
        if (
            not self.is_completed
            and self.last_page is not None
            and self.current_page == self.last_page
        ):
            raise ValueError("current_page == last_page requires is_completed")

    def to_dict(self) -> dict[str, Any]:
        """Serializable view for status displays."""
        return {
            "current_page": self.current_page,
            "last_page": self.last_page,
            "is_completed": self.is_completed,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "total_products": self.total_products,
        }


@dataclass
class Sale:
    """Write-ahead record of a completed transaction.

    Only the sync fields (sync_status, sync_attempts, last_sync_error,
    synced_at) change after creation.
    """

    id: str
    invoice_number: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    payment_method: str
    payment_status: str
    created_at: datetime
    items: list[Any] = field(default_factory=list)
    customer_name: str | None = None
    customer_phone: str | None = None
    synced_at: datetime | None = None
    sync_status: SaleSyncStatus = SaleSyncStatus.PENDING
    sync_attempts: int = 0
    last_sync_error: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Sale:
        """Create Sale from database row."""
        items: list[Any] = []
        if row["items"]:
            items = json.loads(row["items"])
        return cls(
            id=row["id"],
            invoice_number=row["invoice_number"],
            subtotal=Decimal(row["subtotal"]),
            tax_amount=Decimal(row["tax_amount"]),
            total_amount=Decimal(row["total_amount"]),
            payment_method=row["payment_method"],
            payment_status=row["payment_status"],
            created_at=datetime.fromisoformat(row["created_at"]),
            items=items,
            customer_name=row["customer_name"],
            customer_phone=row["customer_phone"],
            synced_at=_parse_dt(row["synced_at"]),
            sync_status=SaleSyncStatus(row["sync_status"]),
            sync_attempts=row["sync_attempts"],
            last_sync_error=row["last_sync_error"],
        )

    def to_payload(self) -> dict[str, Any]:
        """Body of the remote create-sale call."""
        return {
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "total_amount": str(self.total_amount),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "items": self.items,
            "created_at": self.created_at.isoformat(),
        }


class LocalStore:
    """SQLite-based local store for products, sales and sync checkpoints.

    All writes are atomic per row. The connection runs in autocommit mode;
    the only explicit transaction is the bulk product upsert.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Open (or create) the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        if self._db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS products (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                price TEXT NOT NULL,
                category TEXT NOT NULL,
                code TEXT,
                raw_response TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_products_code ON products(code);

            CREATE TABLE IF NOT EXISTS sync_progress (
                source TEXT PRIMARY KEY,
                current_page INTEGER NOT NULL DEFAULT 0,
                last_page INTEGER,
                is_completed INTEGER NOT NULL DEFAULT 0,
                last_sync_at TEXT,
                total_products INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS sales (
                id TEXT PRIMARY KEY,
                invoice_number TEXT NOT NULL UNIQUE,
                customer_name TEXT,
                customer_phone TEXT,
                subtotal TEXT NOT NULL,
                tax_amount TEXT NOT NULL,
                total_amount TEXT NOT NULL,
                payment_method TEXT NOT NULL,
                payment_status TEXT NOT NULL,
                items TEXT NOT NULL,
                created_at TEXT NOT NULL,
                synced_at TEXT,
                sync_status TEXT NOT NULL DEFAULT 'pending',
                sync_attempts INTEGER NOT NULL DEFAULT 0,
                last_sync_error TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_sales_sync_status ON sales(sync_status);
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> LocalStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # === Products ===

    def get_products(
        self,
        category: str | None = None,
        limit: int = 50,
    ) -> list[Product]:
        """List products ordered by name.

        Args:
            category: Only products of this category ("all" or None for every one).
            limit: Maximum number of rows.
        """
        with self._lock:
            if category and category != "all":
                cursor = self._conn.execute(
                    "SELECT * FROM products WHERE category = ? ORDER BY name LIMIT ?",
                    (str(category), limit),
                )
            else:
                cursor = self._conn.execute(
                    "SELECT * FROM products ORDER BY name LIMIT ?",
                    (limit,),
                )
            rows = cursor.fetchall()
        return [Product.from_row(row) for row in rows]

    def find_product_by_code(self, code: str) -> Product | None:
        """Get a product by its scannable code."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM products WHERE code = ?",
                (code,),
            ).fetchone()
        return Product.from_row(row) if row else None

    def get_product(self, product_id: str) -> Product | None:
        """Get a product by id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM products WHERE id = ?",
                (product_id,),
            ).fetchone()
        return Product.from_row(row) if row else None

    def search_products(self, query: str, limit: int = 50) -> list[Product]:
        """Search products by name, code or category."""
        term = f"%{query}%"
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM products
                WHERE name LIKE ? OR code LIKE ? OR category LIKE ?
                ORDER BY name
                LIMIT ?
                """,
                (term, term, term, limit),
            ).fetchall()
        return [Product.from_row(row) for row in rows]

    def count_products(self) -> int:
        """Number of cached products."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM products").fetchone()
        return int(row["n"])

    def upsert_products(self, products: Iterable[Product]) -> int:
        """Insert or update products by id in a single transaction.

        Re-applying the same records leaves the table unchanged.

        Returns:
            Number of records written.
        """
        params = [p.to_params() for p in products]
        if not params:
            return 0

        with self._lock:
            self._conn.execute("BEGIN")
            try:
                self._conn.executemany(
                    """
                    INSERT INTO products (id, name, price, category, code, raw_response)
                    VALUES (:id, :name, :price, :category, :code, :raw_response)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        price = excluded.price,
                        category = excluded.category,
                        code = excluded.code,
                        raw_response = excluded.raw_response
                    """,
                    params,
                )
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return len(params)

    # === Sync progress ===

    def get_sync_progress(self, source: str = PRODUCT_SYNC_SOURCE) -> SyncProgress:
        """Get the checkpoint for a source (initial state when absent)."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sync_progress WHERE source = ?",
                (source,),
            ).fetchone()
        if row is None:
            return SyncProgress(source=source)
        return SyncProgress.from_row(row)

    def set_sync_progress(self, progress: SyncProgress) -> None:
        """Replace the checkpoint of progress.source.

        Raises:
            ValueError: If the checkpoint violates its invariants.
        """
        progress.validate()
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO sync_progress (
                    source, current_page, last_page, is_completed, last_sync_at, total_products
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(source) DO UPDATE SET
                    current_page = excluded.current_page,
                    last_page = excluded.last_page,
                    is_completed = excluded.is_completed,
                    last_sync_at = excluded.last_sync_at,
                    total_products = excluded.total_products
                """,
                (
                    progress.source,
                    progress.current_page,
                    progress.last_page,
                    int(progress.is_completed),
                    _iso(progress.last_sync_at) if progress.last_sync_at else None,
                    progress.total_products,
                ),
            )

    def advance_sync_progress(
        self,
        last_page: int,
        products_added: int,
        source: str = PRODUCT_SYNC_SOURCE,
        synced_at: datetime | None = None,
    ) -> SyncProgress:
        """Record one committed page in a single statement.

        current_page moves forward by exactly one; is_completed is set when it
        reaches last_page.

        Returns:
            The updated checkpoint.

        Raises:
            ValueError: If the advance would move past last_page.
        """
        now = _iso(synced_at or utcnow())
        with self._lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO sync_progress (source) VALUES (?)",
                (source,),
            )
            cursor = self._conn.execute(
                """
                UPDATE sync_progress SET
                    current_page = current_page + 1,
                    last_page = ?,
                    total_products = total_products + ?,
                    last_sync_at = ?,
                    is_completed = (current_page + 1 = ?)
                WHERE source = ? AND current_page + 1 <= ? AND is_completed = 0
                """,
                (last_page, products_added, now, last_page, source, last_page),
            )
            if cursor.rowcount != 1:
                raise ValueError(
                    f"Cannot advance {source} past page {last_page}"
                )
        return self.get_sync_progress(source)

    def reset_sync_progress(self, source: str = PRODUCT_SYNC_SOURCE) -> SyncProgress:
        """Return the checkpoint to its initial state."""
        progress = SyncProgress(source=source)
        self.set_sync_progress(progress)
        return progress

    # === Sales ===

    def create_sale(
        self,
        invoice_number: str,
        *,
        subtotal: Any,
        tax_amount: Any = 0,
        total_amount: Any = None,
        payment_method: str = "cash",
        payment_status: str = "paid",
        items: list[Any] | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
    ) -> Sale:
        """Record a completed sale as pending sync.

        Args:
            invoice_number: Invoice reference, unique per terminal and used as
                the remote idempotency key.
            subtotal: Amount before tax.
            tax_amount: Tax amount.
            total_amount: Grand total; computed when omitted, must equal
                subtotal + tax_amount when given.

        Raises:
            ValidationError: On negative or inconsistent amounts, or a
                duplicate invoice number.
        """
        if not invoice_number:
            raise ValidationError("invoice_number is required")

        subtotal_d = to_decimal(subtotal, "subtotal")
        tax_d = to_decimal(tax_amount, "tax_amount")
        expected_total = subtotal_d + tax_d
        total_d = expected_total if total_amount is None else to_decimal(
            total_amount, "total_amount"
        )

        for name, amount in (
            ("subtotal", subtotal_d),
            ("tax_amount", tax_d),
            ("total_amount", total_d),
        ):
            if amount < 0:
                raise ValidationError(f"{name} must not be negative")
        if total_d != expected_total:
            raise ValidationError(
                f"total_amount {total_d} != subtotal {subtotal_d} + tax_amount {tax_d}"
            )

        sale = Sale(
            id=uuid.uuid4().hex,
            invoice_number=invoice_number,
            subtotal=subtotal_d,
            tax_amount=tax_d,
            total_amount=total_d,
            payment_method=payment_method,
            payment_status=payment_status,
            created_at=utcnow(),
            items=list(items or []),
            customer_name=customer_name,
            customer_phone=customer_phone,
        )

        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO sales (
                        id, invoice_number, customer_name, customer_phone,
                        subtotal, tax_amount, total_amount, payment_method,
                        payment_status, items, created_at, sync_status, sync_attempts
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                    """,
                    (
                        sale.id,
                        sale.invoice_number,
                        sale.customer_name,
                        sale.customer_phone,
                        str(sale.subtotal),
                        str(sale.tax_amount),
                        str(sale.total_amount),
                        sale.payment_method,
                        sale.payment_status,
                        json.dumps(sale.items),
                        _iso(sale.created_at),
                        SaleSyncStatus.PENDING.value,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise ValidationError(
                    f"Invoice {invoice_number} is already recorded"
                ) from e

        logger.info("Recorded sale %s (total %s)", invoice_number, total_d)
        return sale

    def get_sale(self, sale_id: str) -> Sale | None:
        """Get a sale by id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sales WHERE id = ?",
                (sale_id,),
            ).fetchone()
        return Sale.from_row(row) if row else None

    def list_unsynced_sales(self, max_attempts: int | None = None) -> list[Sale]:
        """List pending and failed sales, oldest first.

        Args:
            max_attempts: Skip sales that already had this many sync attempts.
        """
        query = "SELECT * FROM sales WHERE sync_status IN (?, ?)"
        params: list[Any] = [SaleSyncStatus.PENDING.value, SaleSyncStatus.FAILED.value]
        if max_attempts is not None:
            query += " AND sync_attempts < ?"
            params.append(max_attempts)
        query += " ORDER BY created_at, rowid"

        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [Sale.from_row(row) for row in rows]

    def count_unsynced_sales(self) -> int:
        """Number of sales not yet confirmed by the server."""
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM sales WHERE sync_status != ?",
                (SaleSyncStatus.SYNCED.value,),
            ).fetchone()
        return int(row["n"])

    def list_sales_between(self, start: datetime, end: datetime) -> list[Sale]:
        """List sales created in [start, end], newest first."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM sales
                WHERE created_at BETWEEN ? AND ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (_iso(start), _iso(end)),
            ).fetchall()
        return [Sale.from_row(row) for row in rows]

    def mark_sale_syncing(self, sale_id: str) -> bool:
        """Move a sale to syncing and count the attempt.

        Returns:
            False if the sale does not exist or is already synced.
        """
        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE sales SET
                    sync_status = ?,
                    sync_attempts = sync_attempts + 1
                WHERE id = ? AND sync_status != ?
                """,
                (SaleSyncStatus.SYNCING.value, sale_id, SaleSyncStatus.SYNCED.value),
            )
        return cursor.rowcount == 1

    def count_sale_attempt(self, sale_id: str) -> None:
        """Count one more push of a sale that is already syncing."""
        with self._lock:
            self._conn.execute(
                """
                UPDATE sales SET sync_attempts = sync_attempts + 1
                WHERE id = ? AND sync_status = ?
                """,
                (sale_id, SaleSyncStatus.SYNCING.value),
            )

    def mark_sale_synced(self, sale_id: str, synced_at: datetime | None = None) -> None:
        """Confirm a sale. synced_at is only ever written once."""
        when = _iso(synced_at or utcnow())
        with self._lock:
            self._conn.execute(
                """
                UPDATE sales SET
                    sync_status = ?,
                    synced_at = COALESCE(synced_at, ?),
                    last_sync_error = NULL
                WHERE id = ?
                """,
                (SaleSyncStatus.SYNCED.value, when, sale_id),
            )

    def mark_sale_failed(self, sale_id: str, error_message: str) -> None:
        """Record a failed push. Synced sales are left untouched."""
        with self._lock:
            self._conn.execute(
                """
                UPDATE sales SET
                    sync_status = ?,
                    last_sync_error = ?
                WHERE id = ? AND sync_status != ?
                """,
                (
                    SaleSyncStatus.FAILED.value,
                    error_message,
                    sale_id,
                    SaleSyncStatus.SYNCED.value,
                ),
            )

    def recover_interrupted_sales(self) -> int:
        """Return sales left in syncing by an interrupted run to pending.

        Only safe to call while no sales sync is in flight.

        Returns:
            Number of sales recovered.
        """
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE sales SET sync_status = ? WHERE sync_status = ?",
                (SaleSyncStatus.PENDING.value, SaleSyncStatus.SYNCING.value),
            )
        if cursor.rowcount:
            logger.warning("Recovered %d sales interrupted mid-sync", cursor.rowcount)
        return cursor.rowcount

    def delete_synced_sale(self, sale_id: str) -> bool:
        """Delete a sale already confirmed by the server.

        Returns:
            True if a row was deleted.
        """
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM sales WHERE id = ? AND sync_status = ?",
                (sale_id, SaleSyncStatus.SYNCED.value),
            )
        return cursor.rowcount == 1

    def cleanup_synced_sales(self, older_than_days: int = 30) -> int:
        """Delete synced sales confirmed more than older_than_days ago.

        Returns:
            Number of sales deleted.
        """
        cutoff = _iso(utcnow() - timedelta(days=older_than_days))
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM sales WHERE sync_status = ? AND synced_at < ?",
                (SaleSyncStatus.SYNCED.value, cutoff),
            )
        return cursor.rowcount
