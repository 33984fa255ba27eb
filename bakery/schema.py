SCHEMA_SQL = r"""
-- Products (reference data; catalog CRUD lives elsewhere)
CREATE TABLE IF NOT EXISTS products (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL UNIQUE,
  category TEXT,
  original_price REAL NOT NULL CHECK (original_price >= 0),   -- cost from bakery
  sale_price REAL NOT NULL CHECK (sale_price >= 0),           -- retail price
  default_return_percentage REAL NOT NULL DEFAULT 20
    CHECK (default_return_percentage >= 0 AND default_return_percentage <= 100),
  is_active INTEGER NOT NULL DEFAULT 1
);

-- Inventory batches (one check-in line = one batch)
CREATE TABLE IF NOT EXISTS inventory_batches (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  product_id INTEGER NOT NULL,
  quantity REAL NOT NULL CHECK (quantity >= 0),
  original_price REAL NOT NULL CHECK (original_price >= 0),
  sale_price REAL NOT NULL CHECK (sale_price >= 0),
  date_added TEXT NOT NULL,               -- ISO date
  status TEXT NOT NULL DEFAULT 'active'
    CHECK (status IN ('active', 'returned', 'depleted')),
  version INTEGER NOT NULL DEFAULT 0,     -- bumped on every write (optimistic concurrency)
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_batches_product_date
  ON inventory_batches(product_id, date_added);

-- Returns (one row per end-of-day return processing)
CREATE TABLE IF NOT EXISTS returns (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  return_date TEXT NOT NULL,              -- ISO date
  processed_by TEXT NOT NULL,
  processed_at TEXT NOT NULL,             -- ISO datetime
  total_value REAL NOT NULL CHECK (total_value >= 0),
  total_quantity REAL NOT NULL CHECK (total_quantity >= 0),
  total_batches INTEGER NOT NULL CHECK (total_batches >= 0),
  kept_batch_ids TEXT NOT NULL DEFAULT '[]',   -- JSON list
  notification_sent INTEGER NOT NULL DEFAULT 0,
  idempotency_key TEXT UNIQUE
);

CREATE INDEX IF NOT EXISTS idx_returns_date ON returns(return_date);

-- Batch-level lines of a return (snapshots survive batch/product changes)
CREATE TABLE IF NOT EXISTS return_items (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  return_id INTEGER NOT NULL,
  batch_id INTEGER,
  product_id INTEGER,
  product_name TEXT NOT NULL,
  quantity REAL NOT NULL CHECK (quantity > 0),
  age_at_return INTEGER NOT NULL CHECK (age_at_return >= 0),
  date_batch_added TEXT NOT NULL,
  original_price REAL NOT NULL CHECK (original_price >= 0),
  sale_price REAL NOT NULL CHECK (sale_price >= 0),
  return_percentage REAL NOT NULL CHECK (return_percentage >= 0 AND return_percentage <= 100),
  return_value_per_unit REAL NOT NULL CHECK (return_value_per_unit >= 0),
  total_return_value REAL NOT NULL CHECK (total_return_value >= 0),
  FOREIGN KEY (return_id) REFERENCES returns(id) ON DELETE CASCADE,
  FOREIGN KEY (batch_id) REFERENCES inventory_batches(id) ON DELETE SET NULL,
  FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_return_items_return ON return_items(return_id);

-- Audit trail
CREATE TABLE IF NOT EXISTS audit_logs (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts TEXT NOT NULL,
  action TEXT NOT NULL,
  target_type TEXT NOT NULL,
  target_id TEXT,
  actor_id TEXT,
  status TEXT NOT NULL CHECK (status IN ('success', 'failure')),
  details TEXT                            -- JSON
);

-- Staff inbox
CREATE TABLE IF NOT EXISTS staff_notifications (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts TEXT NOT NULL,
  type TEXT NOT NULL,
  title TEXT NOT NULL,
  message TEXT NOT NULL,
  related_type TEXT,
  related_id TEXT,
  is_read INTEGER NOT NULL DEFAULT 0
);
"""
