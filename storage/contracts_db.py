"""Contract Ledger Database Operations.

This module handles all database operations for the contract ledger:
- Schema initialization
- CRUD operations for contracts and their monthly ledgers

Monthly billing and payment amounts live in their own tables, one row
per timeline month (blank months included, so a generated timeline
survives a reload), and are deleted with their contract. Pending billing
is stored as a JSON column on the contract row.

Contracts are listed in ascending id order; the merger relies on this as
the "first match wins" order.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from core.config import DEFAULT_DB_PATH
from core.models.canonical import Contract, MonthlyLedger, PendingBilling
from core.observability.logging import get_logger

logger = get_logger(__name__)


class ContractNotFoundError(LookupError):
    """No contract with the requested id."""
    def __init__(self, contract_id):
        super().__init__(f"Contract not found: {contract_id}")
        self.contract_id = contract_id


CONTRACT_COLUMNS = [
    "project_id",
    "contract_name",
    "supplier",
    "contract_number",
    "contract_amount",
    "bid_method",
    "sign_date",
    "payment_ratio",
    "tax_rate",
    "total_billing_tax_included",
    "total_billing_tax_excluded",
    "total_payment_tax_included",
    "total_payment_tax_excluded",
    "category",
    "pending_billing",
]


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_ledger_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize contract ledger tables.

    Creates:
    - contracts: One row per contract
    - monthly_billing: Tax-excluded billing per month
    - monthly_payment: Tax-included payment per month

    Args:
        db_path: Path to SQLite database file
    """
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS contracts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id TEXT NOT NULL,
                contract_name TEXT NOT NULL,
                supplier TEXT NOT NULL,
                contract_number TEXT,
                contract_amount TEXT,
                bid_method TEXT,
                sign_date TEXT,
                payment_ratio TEXT,
                tax_rate TEXT DEFAULT '9',
                total_billing_tax_included TEXT,
                total_billing_tax_excluded TEXT,
                total_payment_tax_included TEXT,
                total_payment_tax_excluded TEXT,
                category TEXT DEFAULT 'labor',
                pending_billing TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS monthly_billing (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                contract_id INTEGER NOT NULL,
                billing_date TEXT NOT NULL,
                amount TEXT NOT NULL,
                FOREIGN KEY (contract_id) REFERENCES contracts(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS monthly_payment (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                contract_id INTEGER NOT NULL,
                payment_date TEXT NOT NULL,
                amount TEXT NOT NULL,
                FOREIGN KEY (contract_id) REFERENCES contracts(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_contracts_project
            ON contracts(project_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_monthly_billing_contract
            ON monthly_billing(contract_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_monthly_payment_contract
            ON monthly_payment(contract_id)
        """)

        conn.commit()
        logger.info("Contract ledger tables initialized", extra_fields={"db_path": str(db_path)})

    finally:
        conn.close()


# =============================================================================
# Row Mapping
# =============================================================================

def _contract_values(contract: Contract) -> List:
    pending = None
    if contract.pending_billing.has_pending:
        pending = json.dumps(contract.pending_billing.entries, ensure_ascii=False)
    return [
        contract.project_id,
        contract.contract_name,
        contract.supplier,
        contract.contract_number,
        contract.contract_amount,
        contract.bid_method,
        contract.sign_date,
        contract.payment_ratio,
        str(contract.tax_rate),
        contract.total_billing_tax_included,
        contract.total_billing_tax_excluded,
        contract.total_payment_tax_included,
        contract.total_payment_tax_excluded,
        contract.category.value,
        pending,
    ]


def _write_ledgers(cursor: sqlite3.Cursor, contract_id: int, contract: Contract) -> None:
    cursor.execute("DELETE FROM monthly_billing WHERE contract_id = ?", (contract_id,))
    cursor.execute("DELETE FROM monthly_payment WHERE contract_id = ?", (contract_id,))

    cursor.executemany(
        "INSERT INTO monthly_billing (contract_id, billing_date, amount) VALUES (?, ?, ?)",
        [(contract_id, month, amount) for month, amount in contract.monthly_billing.items()],
    )
    cursor.executemany(
        "INSERT INTO monthly_payment (contract_id, payment_date, amount) VALUES (?, ?, ?)",
        [(contract_id, month, amount) for month, amount in contract.monthly_payment_tax_included.items()],
    )


def _read_ledger(conn: sqlite3.Connection, table: str, date_column: str, contract_id) -> Dict[str, str]:
    rows = conn.execute(
        f"SELECT {date_column} AS month, amount FROM {table} WHERE contract_id = ? ORDER BY {date_column}",
        (contract_id,),
    ).fetchall()
    return {row["month"]: row["amount"] for row in rows}


def _row_to_contract(conn: sqlite3.Connection, row: sqlite3.Row) -> Contract:
    pending_raw = row["pending_billing"]
    pending = PendingBilling.of(json.loads(pending_raw)) if pending_raw else PendingBilling.none()

    return Contract(
        id=row["id"],
        project_id=row["project_id"],
        contract_name=row["contract_name"],
        supplier=row["supplier"],
        contract_number=row["contract_number"],
        contract_amount=row["contract_amount"],
        bid_method=row["bid_method"],
        sign_date=row["sign_date"],
        payment_ratio=row["payment_ratio"],
        tax_rate=row["tax_rate"],
        total_billing_tax_included=row["total_billing_tax_included"],
        total_billing_tax_excluded=row["total_billing_tax_excluded"],
        total_payment_tax_included=row["total_payment_tax_included"],
        total_payment_tax_excluded=row["total_payment_tax_excluded"],
        category=row["category"] or "labor",
        monthly_billing=MonthlyLedger.from_mapping(
            _read_ledger(conn, "monthly_billing", "billing_date", row["id"])
        ),
        monthly_payment_tax_included=MonthlyLedger.from_mapping(
            _read_ledger(conn, "monthly_payment", "payment_date", row["id"])
        ),
        pending_billing=pending,
        created_at=datetime.fromisoformat(row["created_at"]),
    )


# =============================================================================
# CRUD Operations
# =============================================================================

def create_contract(contract: Contract, db_path: Path = DEFAULT_DB_PATH) -> Contract:
    """Insert a contract and its ledgers.

    Args:
        contract: Contract to store (its id, if any, is ignored)
        db_path: Path to database

    Returns:
        Copy of the contract with id and created_at populated
    """
    now = datetime.now(timezone.utc).isoformat()
    placeholders = ", ".join("?" for _ in CONTRACT_COLUMNS)

    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"INSERT INTO contracts ({', '.join(CONTRACT_COLUMNS)}, created_at) "
            f"VALUES ({placeholders}, ?)",
            _contract_values(contract) + [now],
        )
        contract_id = cursor.lastrowid
        _write_ledgers(cursor, contract_id, contract)
        conn.commit()
    finally:
        conn.close()

    stored = contract.model_copy(deep=True)
    stored.id = str(contract_id)
    stored.created_at = datetime.fromisoformat(now)
    logger.info(
        "Contract created",
        extra_fields={"contract_id": stored.id, "project_id": stored.project_id, "supplier": stored.supplier},
    )
    return stored


def get_contract(contract_id, db_path: Path = DEFAULT_DB_PATH) -> Contract:
    """Load a contract with its ledgers.

    Raises:
        ContractNotFoundError: no contract with this id
    """
    conn = _connect(db_path)
    try:
        row = conn.execute("SELECT * FROM contracts WHERE id = ?", (contract_id,)).fetchone()
        if row is None:
            raise ContractNotFoundError(contract_id)
        return _row_to_contract(conn, row)
    finally:
        conn.close()


def list_contracts(project_id: Optional[str] = None, db_path: Path = DEFAULT_DB_PATH) -> List[Contract]:
    """All contracts (optionally of one project), ascending by id."""
    conn = _connect(db_path)
    try:
        if project_id is None:
            rows = conn.execute("SELECT * FROM contracts ORDER BY id").fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM contracts WHERE project_id = ? ORDER BY id",
                (str(project_id),),
            ).fetchall()
        return [_row_to_contract(conn, row) for row in rows]
    finally:
        conn.close()


def update_contract(contract: Contract, db_path: Path = DEFAULT_DB_PATH) -> Contract:
    """Replace a stored contract and its ledgers.

    Raises:
        ContractNotFoundError: the contract has no id or is not stored
    """
    if contract.id is None:
        raise ContractNotFoundError(None)

    assignments = ", ".join(f"{column} = ?" for column in CONTRACT_COLUMNS)

    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"UPDATE contracts SET {assignments} WHERE id = ?",
            _contract_values(contract) + [contract.id],
        )
        if cursor.rowcount == 0:
            raise ContractNotFoundError(contract.id)
        _write_ledgers(cursor, int(contract.id), contract)
        conn.commit()
    finally:
        conn.close()

    logger.debug("Contract updated", extra_fields={"contract_id": contract.id})
    return get_contract(contract.id, db_path=db_path)


def delete_contract(contract_id, db_path: Path = DEFAULT_DB_PATH) -> None:
    """Delete a contract; its monthly ledger rows go with it.

    Raises:
        ContractNotFoundError: no contract with this id
    """
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM contracts WHERE id = ?", (contract_id,))
        if cursor.rowcount == 0:
            raise ContractNotFoundError(contract_id)
        conn.commit()
    finally:
        conn.close()

    logger.info("Contract deleted", extra_fields={"contract_id": str(contract_id)})
