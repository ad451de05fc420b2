import sqlite3
import json
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from .catalog import STRAINS_BY_ID, PRODUCT_TYPES_BY_ID, EFFECTS_BY_ID, METHODS_BY_ID
from .config import DB_PATH, DB_BUSY_TIMEOUT_MS, MIN_RATING, MAX_RATING
from .models import Entry, Photo, Product
from .utils import retry_when_locked

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Thread-safe SQLite connection pool.

    Features:
    - One connection per thread (SQLite threading requirement)
    - Periodic health checks via SELECT 1
    - Explicit transaction nesting tracking
    """

    def __init__(self, db_path, health_check_interval: int = 300):
        self._db_path = db_path
        self._health_check_interval = health_check_interval

        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._last_health_check: dict[int, float] = {}
        self._transaction_depth: dict[int, int] = {}

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row

        conn.execute(f"PRAGMA busy_timeout = {DB_BUSY_TIMEOUT_MS}")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")

        return conn

    def _health_check(self, conn: sqlite3.Connection) -> bool:
        try:
            conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error:
            return False

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection for the current thread, creating if necessary."""
        thread_id = threading.get_ident()
        now = time.time()

        with self._lock:
            conn = self._connections.get(thread_id)

            if conn is not None:
                last_check = self._last_health_check.get(thread_id, 0)
                if now - last_check > self._health_check_interval:
                    if not self._health_check(conn):
                        logger.warning(f"Connection for thread {thread_id} failed health check, replacing")
                        try:
                            conn.close()
                        except sqlite3.Error as e:
                            logger.debug(f"Error closing unhealthy connection: {e}")
                        conn = None
                    else:
                        self._last_health_check[thread_id] = now

            if conn is None:
                conn = self._create_connection()
                self._connections[thread_id] = conn
                self._last_health_check[thread_id] = now
                self._transaction_depth[thread_id] = 0
                logger.debug(f"Opened connection to {self._db_path} for thread {thread_id}")

            return conn

    def get_transaction_depth(self) -> int:
        return self._transaction_depth.get(threading.get_ident(), 0)

    def increment_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._transaction_depth[thread_id] = self._transaction_depth.get(thread_id, 0) + 1

    def decrement_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            depth = self._transaction_depth.get(thread_id, 1)
            self._transaction_depth[thread_id] = max(0, depth - 1)

    def close_all(self):
        """Close all connections (call on application shutdown)."""
        with self._lock:
            for thread_id, conn in list(self._connections.items()):
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for thread {thread_id}: {e}")

            self._connections.clear()
            self._last_health_check.clear()
            self._transaction_depth.clear()
            logger.debug("Connection pool closed")


SCHEMA = """
    CREATE TABLE IF NOT EXISTS products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        type TEXT,
        strain TEXT,
        brand TEXT,
        cannabinoids TEXT,  -- JSON object: id -> percentage
        terpenes TEXT,      -- JSON object: id -> percentage
        notes TEXT,
        created_at TEXT
    );

    CREATE TABLE IF NOT EXISTS entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER,
        date TEXT,
        rating INTEGER DEFAULT 0,
        effects TEXT,       -- JSON list
        method TEXT,
        dosage TEXT,
        notes TEXT
    );

    CREATE TABLE IF NOT EXISTS photos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER,
        entry_id INTEGER,
        data BLOB,
        created_at TEXT
    );

    CREATE TABLE IF NOT EXISTS preferences (
        key TEXT PRIMARY KEY,
        value TEXT          -- JSON
    );

    CREATE INDEX IF NOT EXISTS idx_products_name ON products(name);
    CREATE INDEX IF NOT EXISTS idx_products_type ON products(type);
    CREATE INDEX IF NOT EXISTS idx_products_strain ON products(strain);
    CREATE INDEX IF NOT EXISTS idx_products_created ON products(created_at);
    CREATE INDEX IF NOT EXISTS idx_entries_product ON entries(product_id);
    CREATE INDEX IF NOT EXISTS idx_entries_date ON entries(date);
    CREATE INDEX IF NOT EXISTS idx_entries_rating ON entries(rating);
    CREATE INDEX IF NOT EXISTS idx_photos_product ON photos(product_id);
    CREATE INDEX IF NOT EXISTS idx_photos_entry ON photos(entry_id);
"""


def load_json(val, default=None):
    """Safely load JSON from db field."""
    if not val:
        return default
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{str(val)[:50]}...': {e}")
        return default


def _validate_amounts(kind: str, amounts: dict[str, float]) -> None:
    for key, value in amounts.items():
        if not 0 <= value <= 100:
            raise ValueError(f"{kind} '{key}' must be a percentage between 0 and 100, got {value}")


def validate_product(product: Product) -> None:
    """Raise ValueError if a product cannot be stored."""
    if not product.name or not product.name.strip():
        raise ValueError("Product name is required")
    if product.type not in PRODUCT_TYPES_BY_ID:
        raise ValueError(f"Unknown product type: {product.type}")
    if product.strain is not None and product.strain not in STRAINS_BY_ID:
        raise ValueError(f"Unknown strain: {product.strain}")
    _validate_amounts("Cannabinoid", product.cannabinoids)
    _validate_amounts("Terpene", product.terpenes)


def validate_entry(entry: Entry) -> None:
    """Raise ValueError if an entry cannot be stored. Rating 0 means unrated."""
    if entry.rating and not MIN_RATING <= entry.rating <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {entry.rating}")
    unknown = [e for e in entry.effects if e not in EFFECTS_BY_ID]
    if unknown:
        raise ValueError(f"Unknown effects: {', '.join(unknown)}")
    if entry.method is not None and entry.method not in METHODS_BY_ID:
        raise ValueError(f"Unknown consumption method: {entry.method}")


def _product_from_row(row: sqlite3.Row) -> Product:
    return Product(
        id=row['id'],
        name=row['name'],
        type=row['type'] or 'flower',
        strain=row['strain'],
        brand=row['brand'],
        cannabinoids=load_json(row['cannabinoids'], {}),
        terpenes=load_json(row['terpenes'], {}),
        notes=row['notes'] or '',
        created_at=row['created_at'],
    )


def _entry_from_row(row: sqlite3.Row) -> Entry:
    return Entry(
        id=row['id'],
        product_id=row['product_id'],
        date=row['date'],
        rating=row['rating'] or 0,
        effects=tuple(load_json(row['effects'], [])),
        method=row['method'],
        dosage=row['dosage'] or '',
        notes=row['notes'] or '',
    )


def _photo_from_row(row: sqlite3.Row) -> Photo:
    return Photo(
        id=row['id'],
        product_id=row['product_id'],
        entry_id=row['entry_id'],
        data=bytes(row['data'] or b''),
        created_at=row['created_at'],
    )


class JournalStore:
    """
    SQLite-backed store for products, entries, photos and key/value preferences.

    Deleting a product removes its entries and every photo attached to the
    product or those entries. Reads that must agree with each other go through
    snapshot().
    """

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path is not None else DB_PATH
        self._pool: ConnectionPool | None = None
        self._pool_lock = threading.Lock()

    def _get_pool(self) -> ConnectionPool:
        if self._pool is None:
            with self._pool_lock:
                if self._pool is None:
                    self.db_path.parent.mkdir(exist_ok=True, parents=True)
                    self._pool = ConnectionPool(self.db_path)
        return self._pool

    @contextmanager
    def get_db(self, read_only: bool = False):
        """
        Get database connection with proper transaction handling.

        Args:
            read_only: If True, skip commit on exit

        Only the outermost context commits/rollbacks; nested contexts join it.
        """
        pool = self._get_pool()
        conn = pool.get_connection()

        is_outermost = pool.get_transaction_depth() == 0
        pool.increment_transaction_depth()

        try:
            yield conn

            if is_outermost and not read_only:
                conn.commit()

        except Exception:
            if is_outermost:
                conn.rollback()
            raise

        finally:
            pool.decrement_transaction_depth()

    def init_db(self) -> None:
        with self.get_db() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"Initialized journal database at {self.db_path}")

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close_all()
            self._pool = None

    # Products

    @retry_when_locked()
    def add_product(self, product: Product) -> int:
        validate_product(product)
        created_at = product.created_at or datetime.now().isoformat()
        with self.get_db() as conn:
            cursor = conn.execute("""
                INSERT INTO products (id, name, type, strain, brand, cannabinoids, terpenes, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                product.id, product.name.strip(), product.type, product.strain, product.brand,
                json.dumps(product.cannabinoids), json.dumps(product.terpenes),
                product.notes, created_at,
            ))
            product_id = cursor.lastrowid
        logger.debug(f"Added product {product_id} '{product.name}'")
        return product_id

    def get_product(self, product_id: int) -> Product | None:
        with self.get_db(read_only=True) as conn:
            row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        return _product_from_row(row) if row else None

    def list_products(self) -> list[Product]:
        with self.get_db(read_only=True) as conn:
            rows = conn.execute("SELECT * FROM products ORDER BY id").fetchall()
        return [_product_from_row(r) for r in rows]

    @retry_when_locked()
    def update_product(self, product: Product) -> None:
        """Replace a stored product. The creation timestamp is kept."""
        if product.id is None:
            raise ValueError("Cannot update a product without an id")
        validate_product(product)
        with self.get_db() as conn:
            cursor = conn.execute("""
                UPDATE products
                SET name = ?, type = ?, strain = ?, brand = ?, cannabinoids = ?, terpenes = ?, notes = ?
                WHERE id = ?
            """, (
                product.name.strip(), product.type, product.strain, product.brand,
                json.dumps(product.cannabinoids), json.dumps(product.terpenes),
                product.notes, product.id,
            ))
            if cursor.rowcount == 0:
                raise ValueError(f"Product {product.id} does not exist")

    @retry_when_locked()
    def delete_product(self, product_id: int) -> int:
        """Delete a product with its entries and photos. Returns the number of entries removed."""
        with self.get_db() as conn:
            entry_ids = [r['id'] for r in conn.execute(
                "SELECT id FROM entries WHERE product_id = ?", (product_id,)
            )]
            for entry_id in entry_ids:
                self._delete_entry(conn, entry_id)
            conn.execute("DELETE FROM photos WHERE product_id = ?", (product_id,))
            cursor = conn.execute("DELETE FROM products WHERE id = ?", (product_id,))
            if cursor.rowcount == 0:
                raise ValueError(f"Product {product_id} does not exist")

        logger.info(f"Deleted product {product_id} and {len(entry_ids)} entries")
        return len(entry_ids)

    # Entries

    @retry_when_locked()
    def add_entry(self, entry: Entry) -> int:
        validate_entry(entry)
        date = entry.date or datetime.now().isoformat()
        with self.get_db() as conn:
            self._require_product(conn, entry.product_id)
            cursor = conn.execute("""
                INSERT INTO entries (id, product_id, date, rating, effects, method, dosage, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entry.id, entry.product_id, date, entry.rating or 0,
                json.dumps(list(entry.effects)), entry.method, entry.dosage, entry.notes,
            ))
            entry_id = cursor.lastrowid
        logger.debug(f"Added entry {entry_id} for product {entry.product_id}")
        return entry_id

    def get_entry(self, entry_id: int) -> Entry | None:
        with self.get_db(read_only=True) as conn:
            row = conn.execute("SELECT * FROM entries WHERE id = ?", (entry_id,)).fetchone()
        return _entry_from_row(row) if row else None

    def list_entries(self) -> list[Entry]:
        """All entries, newest first."""
        with self.get_db(read_only=True) as conn:
            rows = conn.execute("SELECT * FROM entries ORDER BY date DESC, id DESC").fetchall()
        return [_entry_from_row(r) for r in rows]

    def list_entries_for_product(self, product_id: int) -> list[Entry]:
        with self.get_db(read_only=True) as conn:
            rows = conn.execute(
                "SELECT * FROM entries WHERE product_id = ? ORDER BY date DESC, id DESC",
                (product_id,)
            ).fetchall()
        return [_entry_from_row(r) for r in rows]

    @retry_when_locked()
    def update_entry(self, entry: Entry) -> None:
        if entry.id is None:
            raise ValueError("Cannot update an entry without an id")
        validate_entry(entry)
        with self.get_db() as conn:
            self._require_product(conn, entry.product_id)
            cursor = conn.execute("""
                UPDATE entries
                SET product_id = ?, date = COALESCE(?, date), rating = ?, effects = ?,
                    method = ?, dosage = ?, notes = ?
                WHERE id = ?
            """, (
                entry.product_id, entry.date, entry.rating or 0, json.dumps(list(entry.effects)),
                entry.method, entry.dosage, entry.notes, entry.id,
            ))
            if cursor.rowcount == 0:
                raise ValueError(f"Entry {entry.id} does not exist")

    @retry_when_locked()
    def delete_entry(self, entry_id: int) -> None:
        with self.get_db() as conn:
            if not self._delete_entry(conn, entry_id):
                raise ValueError(f"Entry {entry_id} does not exist")

    @staticmethod
    def _require_product(conn: sqlite3.Connection, product_id: int | None) -> None:
        if product_id is None or not conn.execute(
            "SELECT 1 FROM products WHERE id = ?", (product_id,)
        ).fetchone():
            raise ValueError(f"Product {product_id} does not exist")

    @staticmethod
    def _delete_entry(conn: sqlite3.Connection, entry_id: int) -> bool:
        conn.execute("DELETE FROM photos WHERE entry_id = ?", (entry_id,))
        return conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,)).rowcount > 0

    # Photos

    @retry_when_locked()
    def add_photo(self, photo: Photo) -> int:
        if photo.product_id is None and photo.entry_id is None:
            raise ValueError("A photo must belong to a product or an entry")
        with self.get_db() as conn:
            cursor = conn.execute(
                "INSERT INTO photos (product_id, entry_id, data, created_at) VALUES (?, ?, ?, ?)",
                (photo.product_id, photo.entry_id, photo.data,
                 photo.created_at or datetime.now().isoformat())
            )
            return cursor.lastrowid

    def get_photo(self, photo_id: int) -> Photo | None:
        with self.get_db(read_only=True) as conn:
            row = conn.execute("SELECT * FROM photos WHERE id = ?", (photo_id,)).fetchone()
        return _photo_from_row(row) if row else None

    def list_photos_for_product(self, product_id: int) -> list[Photo]:
        with self.get_db(read_only=True) as conn:
            rows = conn.execute("SELECT * FROM photos WHERE product_id = ? ORDER BY id", (product_id,)).fetchall()
        return [_photo_from_row(r) for r in rows]

    def list_photos_for_entry(self, entry_id: int) -> list[Photo]:
        with self.get_db(read_only=True) as conn:
            rows = conn.execute("SELECT * FROM photos WHERE entry_id = ? ORDER BY id", (entry_id,)).fetchall()
        return [_photo_from_row(r) for r in rows]

    @retry_when_locked()
    def delete_photo(self, photo_id: int) -> None:
        with self.get_db() as conn:
            conn.execute("DELETE FROM photos WHERE id = ?", (photo_id,))

    # Preferences

    @retry_when_locked()
    def set_preference(self, key: str, value: Any) -> None:
        with self.get_db() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO preferences (key, value) VALUES (?, ?)",
                (key, json.dumps(value))
            )

    def get_preference(self, key: str, default: Any = None) -> Any:
        with self.get_db(read_only=True) as conn:
            row = conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return load_json(row['value'], default)

    # Snapshot

    def snapshot(self) -> tuple[list[Entry], list[Product]]:
        """
        Read entries and products inside one read transaction.

        Under WAL a deferred transaction pins the view at its first read, so
        the two lists always agree even while another connection writes.
        """
        with self.get_db(read_only=True) as conn:
            owns_transaction = not conn.in_transaction
            if owns_transaction:
                conn.execute("BEGIN")
            try:
                entries = [_entry_from_row(r) for r in conn.execute(
                    "SELECT * FROM entries ORDER BY date DESC, id DESC"
                )]
                products = [_product_from_row(r) for r in conn.execute(
                    "SELECT * FROM products ORDER BY id"
                )]
            finally:
                if owns_transaction:
                    conn.commit()
        return entries, products
