from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import pandas as pd

from .config import DB_PATH
from .engine.payoff import supersede_projection
from .errors import InvalidAmount, RecordValidationError, UnknownEntity
from .models import (
    DebtItem,
    DueDate,
    Envelope,
    Frequency,
    IncomeSource,
    PayoffProjection,
    Priority,
    Transfer,
)
from .money import from_cents, to_cents

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS envelopes (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    target_amount REAL NOT NULL DEFAULT 0,
    current_amount REAL NOT NULL DEFAULT 0,
    frequency TEXT NOT NULL DEFAULT 'none',
    due_date TEXT,
    priority TEXT NOT NULL DEFAULT 'discretionary',
    is_goal INTEGER NOT NULL DEFAULT 0,
    is_spending INTEGER NOT NULL DEFAULT 0,
    is_tracking_only INTEGER NOT NULL DEFAULT 0,
    pay_cycle_amount REAL,
    opening_balance REAL NOT NULL DEFAULT 0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS income_sources (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    amount REAL NOT NULL,
    frequency TEXT NOT NULL DEFAULT 'fortnightly',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS envelope_allocations (
    envelope_id TEXT NOT NULL,
    source_id TEXT NOT NULL,
    amount REAL NOT NULL,
    PRIMARY KEY (envelope_id, source_id)
);

CREATE TABLE IF NOT EXISTS debt_items (
    id TEXT PRIMARY KEY,
    envelope_id TEXT NOT NULL,
    name TEXT NOT NULL,
    debt_type TEXT NOT NULL DEFAULT 'other',
    starting_balance REAL NOT NULL,
    current_balance REAL NOT NULL,
    interest_rate REAL,
    minimum_payment REAL,
    paid_off_at TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS payoff_projections (
    id TEXT PRIMARY KEY,
    debt_id TEXT NOT NULL,
    starting_balance REAL NOT NULL,
    current_balance REAL NOT NULL,
    apr REAL,
    minimum_payment REAL NOT NULL,
    extra_payment REAL NOT NULL DEFAULT 0,
    months_to_payoff INTEGER,
    total_interest REAL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS transfers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_id TEXT NOT NULL,
    to_id TEXT NOT NULL,
    amount REAL NOT NULL,
    note TEXT,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS ix_debt_envelope ON debt_items (envelope_id);
CREATE UNIQUE INDEX IF NOT EXISTS ux_active_projection
ON payoff_projections (debt_id) WHERE is_active = 1;
CREATE INDEX IF NOT EXISTS ix_transfer_created ON transfers (created_at);
"""


def _ensure_dirs(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


@contextmanager
def connect() -> Iterator[sqlite3.Connection]:
    """Open a connection to the budget database.

    Connections run in autocommit mode; multi-statement writes go through
    :func:`write_transaction`.
    """
    db_path = Path(DB_PATH)
    _ensure_dirs(db_path)
    conn = sqlite3.connect(str(db_path), timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def write_transaction(conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
    """Run a block inside one ``BEGIN IMMEDIATE`` transaction.

    The write lock is taken up front, so state read inside the block can't be
    changed by another writer before the block commits. Any exception rolls
    the whole block back and is re-raised.
    """
    if conn is not None and conn.in_transaction:
        yield conn
        return
    with _maybe_connect(conn) as active:
        active.execute("BEGIN IMMEDIATE")
        try:
            yield active
        except BaseException as exc:
            active.execute("ROLLBACK")
            logger.error("Rolled back transaction: %s", exc)
            raise
        active.execute("COMMIT")


@contextmanager
def _maybe_connect(conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
    if conn is not None:
        yield conn
    else:
        with connect() as fresh:
            yield fresh


def init_db() -> None:
    with connect() as conn:
        conn.executescript(SCHEMA_SQL)


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------


def _require(row: Mapping[str, Any], kind: str, key: str) -> Any:
    value = row.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise RecordValidationError(kind, f"missing {key}", dict(row))
    return value


def _parse_money(row: Mapping[str, Any], kind: str, key: str, default: Optional[float] = 0.0) -> Optional[float]:
    value = row.get(key)
    if value is None or value == '':
        return default
    try:
        return from_cents(to_cents(float(value)))
    except (TypeError, ValueError):
        raise RecordValidationError(kind, f"{key} is not a number: {value!r}", dict(row)) from None


def _parse_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {'1', 'true', 'yes'}
    return bool(value)


def _parse_timestamp(row: Mapping[str, Any], kind: str, key: str) -> Optional[datetime]:
    value = row.get(key)
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise RecordValidationError(kind, f"{key} is not a timestamp: {value!r}", dict(row)) from None


def _parse_due_date(row: Mapping[str, Any]) -> DueDate:
    value = row.get('due_date')
    if value is None or value == '':
        return None
    if isinstance(value, (date, int)):
        return value
    text = str(value).strip()
    try:
        if text.isdigit():
            day = int(text)
            if not 1 <= day <= 31:
                raise ValueError(text)
            return day
        return date.fromisoformat(text[:10])
    except ValueError:
        raise RecordValidationError('envelope', f"due_date is not a date or day of month: {value!r}", dict(row)) from None


def _format_due_date(value: DueDate) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(int(value))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_envelope_row(row: Mapping[str, Any], allocations: Optional[Mapping[str, float]] = None) -> Envelope:
    """Validate a stored envelope row and turn it into an :class:`Envelope`.

    Raises:
        RecordValidationError: If a required field is missing or malformed
    """
    row = dict(row)
    try:
        frequency = Frequency.parse(row.get('frequency'))
        priority = Priority.parse(row.get('priority'))
    except ValueError as exc:
        raise RecordValidationError('envelope', str(exc), row) from None
    return Envelope(
        id=str(_require(row, 'envelope', 'id')),
        name=str(_require(row, 'envelope', 'name')),
        target_amount=_parse_money(row, 'envelope', 'target_amount'),
        current_amount=_parse_money(row, 'envelope', 'current_amount'),
        frequency=frequency,
        due_date=_parse_due_date(row),
        priority=priority,
        is_goal=_parse_flag(row.get('is_goal')),
        is_spending=_parse_flag(row.get('is_spending')),
        is_tracking_only=_parse_flag(row.get('is_tracking_only')),
        income_allocations=dict(allocations or {}),
        pay_cycle_amount=_parse_money(row, 'envelope', 'pay_cycle_amount', default=None),
        opening_balance=_parse_money(row, 'envelope', 'opening_balance'),
        created_at=_parse_timestamp(row, 'envelope', 'created_at'),
    )


def parse_income_source_row(row: Mapping[str, Any]) -> IncomeSource:
    row = dict(row)
    try:
        frequency = Frequency.parse(row.get('frequency') or Frequency.FORTNIGHTLY)
    except ValueError as exc:
        raise RecordValidationError('income source', str(exc), row) from None
    amount = _parse_money(row, 'income source', 'amount', default=None)
    if amount is None or amount < 0:
        raise RecordValidationError('income source', f"amount must be a non-negative number: {amount!r}", row)
    return IncomeSource(
        id=str(_require(row, 'income source', 'id')),
        name=str(_require(row, 'income source', 'name')),
        amount=amount,
        frequency=frequency,
        is_active=_parse_flag(row.get('is_active', 1)),
        created_at=_parse_timestamp(row, 'income source', 'created_at'),
    )


def parse_debt_row(row: Mapping[str, Any]) -> DebtItem:
    row = dict(row)
    starting = _parse_money(row, 'debt', 'starting_balance', default=None)
    current = _parse_money(row, 'debt', 'current_balance', default=None)
    if starting is None or current is None:
        raise RecordValidationError('debt', "balances are required", row)
    rate = row.get('interest_rate')
    try:
        rate = float(rate) if rate not in (None, '') else None
    except (TypeError, ValueError):
        raise RecordValidationError('debt', f"interest_rate is not a number: {rate!r}", row) from None
    return DebtItem(
        id=str(_require(row, 'debt', 'id')),
        envelope_id=str(_require(row, 'debt', 'envelope_id')),
        name=str(_require(row, 'debt', 'name')),
        starting_balance=starting,
        current_balance=current,
        debt_type=row.get('debt_type') or 'other',
        interest_rate=rate,
        minimum_payment=_parse_money(row, 'debt', 'minimum_payment', default=None),
        paid_off_at=_parse_timestamp(row, 'debt', 'paid_off_at'),
        created_at=_parse_timestamp(row, 'debt', 'created_at'),
    )


def parse_projection_row(row: Mapping[str, Any]) -> PayoffProjection:
    row = dict(row)
    months = row.get('months_to_payoff')
    return PayoffProjection(
        id=str(_require(row, 'projection', 'id')),
        debt_id=str(_require(row, 'projection', 'debt_id')),
        starting_balance=_parse_money(row, 'projection', 'starting_balance'),
        current_balance=_parse_money(row, 'projection', 'current_balance'),
        apr=float(row['apr']) if row.get('apr') is not None else None,
        minimum_payment=_parse_money(row, 'projection', 'minimum_payment'),
        extra_payment=_parse_money(row, 'projection', 'extra_payment'),
        months_to_payoff=int(months) if months is not None else None,
        total_interest=_parse_money(row, 'projection', 'total_interest', default=None),
        is_active=_parse_flag(row.get('is_active')),
        created_at=_parse_timestamp(row, 'projection', 'created_at'),
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def save_envelope(envelope: Envelope, *, conn: Optional[sqlite3.Connection] = None) -> None:
    """Insert or update an envelope together with its income allocations."""
    created = envelope.created_at or datetime.now()
    with write_transaction(conn) as active:
        active.execute(
            """
            INSERT INTO envelopes (id, name, target_amount, current_amount, frequency, due_date,
                priority, is_goal, is_spending, is_tracking_only, pay_cycle_amount,
                opening_balance, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                target_amount = excluded.target_amount,
                current_amount = excluded.current_amount,
                frequency = excluded.frequency,
                due_date = excluded.due_date,
                priority = excluded.priority,
                is_goal = excluded.is_goal,
                is_spending = excluded.is_spending,
                is_tracking_only = excluded.is_tracking_only,
                pay_cycle_amount = excluded.pay_cycle_amount,
                opening_balance = excluded.opening_balance
            """,
            (
                envelope.id,
                envelope.name,
                envelope.target_amount,
                envelope.current_amount,
                Frequency.parse(envelope.frequency).value,
                _format_due_date(envelope.due_date),
                Priority.parse(envelope.priority).value,
                int(envelope.is_goal),
                int(envelope.is_spending),
                int(envelope.is_tracking_only),
                envelope.pay_cycle_amount,
                envelope.opening_balance,
                _iso(created),
            ),
        )
        replace_allocations({envelope.id: envelope.income_allocations}, conn=active)


def save_income_source(source: IncomeSource, *, conn: Optional[sqlite3.Connection] = None) -> None:
    if to_cents(source.amount) < 0:
        raise InvalidAmount(source.amount)
    with write_transaction(conn) as active:
        active.execute(
            """
            INSERT INTO income_sources (id, name, amount, frequency, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                amount = excluded.amount,
                frequency = excluded.frequency,
                is_active = excluded.is_active
            """,
            (
                source.id,
                source.name,
                source.amount,
                Frequency.parse(source.frequency).value,
                int(source.is_active),
                _iso(source.created_at or datetime.now()),
            ),
        )


def save_debt(debt: DebtItem, *, conn: Optional[sqlite3.Connection] = None) -> None:
    if to_cents(debt.current_balance) < 0 or to_cents(debt.starting_balance) < 0:
        raise InvalidAmount(debt.current_balance, "debt balances must not be negative")
    with write_transaction(conn) as active:
        active.execute(
            """
            INSERT INTO debt_items (id, envelope_id, name, debt_type, starting_balance,
                current_balance, interest_rate, minimum_payment, paid_off_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                envelope_id = excluded.envelope_id,
                name = excluded.name,
                debt_type = excluded.debt_type,
                starting_balance = excluded.starting_balance,
                current_balance = excluded.current_balance,
                interest_rate = excluded.interest_rate,
                minimum_payment = excluded.minimum_payment,
                paid_off_at = excluded.paid_off_at
            """,
            (
                debt.id,
                debt.envelope_id,
                debt.name,
                debt.debt_type,
                debt.starting_balance,
                debt.current_balance,
                debt.interest_rate,
                debt.minimum_payment,
                _iso(debt.paid_off_at),
                _iso(debt.created_at or datetime.now()),
            ),
        )


def replace_allocations(
    allocations: Mapping[str, Mapping[str, float]],
    *,
    conn: Optional[sqlite3.Connection] = None,
) -> None:
    """Replace the allocation rows of every envelope named in ``allocations``."""
    with write_transaction(conn) as active:
        for envelope_id, row in allocations.items():
            active.execute("DELETE FROM envelope_allocations WHERE envelope_id = ?", (envelope_id,))
            active.executemany(
                "INSERT INTO envelope_allocations (envelope_id, source_id, amount) VALUES (?, ?, ?)",
                [(envelope_id, sid, amount) for sid, amount in row.items() if to_cents(amount) != 0],
            )
    logger.debug("Replaced allocations for %d envelopes", len(allocations))


def apply_balance_deltas(
    envelope_deltas: Optional[Mapping[str, float]] = None,
    debt_deltas: Optional[Mapping[str, float]] = None,
    transfers: Sequence[Transfer] = (),
    *,
    paid_off: Optional[Mapping[str, datetime]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> bool:
    """Apply a named set of balance changes all-or-nothing.

    Args:
        envelope_deltas: Envelope id -> amount added to ``current_amount``
        debt_deltas: Debt id -> amount added to ``current_balance``
        transfers: Audit rows recorded alongside the deltas
        paid_off: Debt id -> timestamp stamped into ``paid_off_at``
        conn: Connection of an enclosing :func:`write_transaction`

    Returns:
        True once the batch is committed

    Raises:
        UnknownEntity: If an envelope or debt doesn't exist
        InvalidAmount: If a debt balance would drop below zero
    """
    envelope_deltas = envelope_deltas or {}
    debt_deltas = debt_deltas or {}
    paid_off = paid_off or {}
    with write_transaction(conn) as active:
        for envelope_id, delta in envelope_deltas.items():
            row = active.execute("SELECT current_amount FROM envelopes WHERE id = ?", (envelope_id,)).fetchone()
            if row is None:
                raise UnknownEntity('envelope', envelope_id)
            new_amount = from_cents(to_cents(row['current_amount']) + to_cents(delta))
            active.execute("UPDATE envelopes SET current_amount = ? WHERE id = ?", (new_amount, envelope_id))

        for debt_id in set(debt_deltas) | set(paid_off):
            row = active.execute("SELECT current_balance FROM debt_items WHERE id = ?", (debt_id,)).fetchone()
            if row is None:
                raise UnknownEntity('debt', debt_id)
            new_cents = to_cents(row['current_balance']) + to_cents(debt_deltas.get(debt_id, 0))
            if new_cents < 0:
                raise InvalidAmount(from_cents(new_cents), f"debt {debt_id} balance would be negative")
            active.execute(
                "UPDATE debt_items SET current_balance = ?, paid_off_at = COALESCE(?, paid_off_at) WHERE id = ?",
                (from_cents(new_cents), _iso(paid_off.get(debt_id)), debt_id),
            )

        active.executemany(
            "INSERT INTO transfers (from_id, to_id, amount, note, created_at) VALUES (?, ?, ?, ?, ?)",
            [
                (t.from_id, t.to_id, t.amount, t.note, _iso(t.created_at or datetime.now()))
                for t in transfers
            ],
        )
    logger.info(
        "Committed balance batch: %d envelopes, %d debts, %d transfers",
        len(envelope_deltas), len(set(debt_deltas) | set(paid_off)), len(transfers),
    )
    return True


def insert_projection(
    projection: PayoffProjection,
    *,
    conn: Optional[sqlite3.Connection] = None,
) -> PayoffProjection:
    """Store ``projection`` as the debt's only active projection."""
    with write_transaction(conn) as active:
        existing = [
            parse_projection_row(row)
            for row in active.execute(
                "SELECT * FROM payoff_projections WHERE debt_id = ? AND is_active = 1",
                (projection.debt_id,),
            )
        ]
        retired, current = supersede_projection(existing, projection)
        active.executemany(
            "UPDATE payoff_projections SET is_active = 0 WHERE id = ?",
            [(p.id,) for p in retired],
        )
        active.execute(
            """
            INSERT INTO payoff_projections (id, debt_id, starting_balance, current_balance, apr,
                minimum_payment, extra_payment, months_to_payoff, total_interest, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                current.id,
                current.debt_id,
                current.starting_balance,
                current.current_balance,
                current.apr,
                current.minimum_payment,
                current.extra_payment,
                current.months_to_payoff,
                current.total_interest,
                int(current.is_active),
                _iso(current.created_at or datetime.now()),
            ),
        )
    logger.info("Stored projection %s for debt %s (%d superseded)", current.id, current.debt_id, len(retired))
    return current


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def fetch_allocations(*, conn: Optional[sqlite3.Connection] = None) -> Dict[str, Dict[str, float]]:
    with _maybe_connect(conn) as active:
        rows = active.execute(
            "SELECT envelope_id, source_id, amount FROM envelope_allocations ORDER BY envelope_id, source_id"
        ).fetchall()
    allocations: Dict[str, Dict[str, float]] = {}
    for row in rows:
        allocations.setdefault(row['envelope_id'], {})[row['source_id']] = from_cents(to_cents(row['amount']))
    return allocations


def fetch_envelopes(*, conn: Optional[sqlite3.Connection] = None) -> List[Envelope]:
    with _maybe_connect(conn) as active:
        rows = active.execute("SELECT * FROM envelopes ORDER BY created_at ASC, id ASC").fetchall()
        allocations = fetch_allocations(conn=active)
    return [parse_envelope_row(row, allocations.get(row['id'])) for row in rows]


def fetch_envelope(envelope_id: str, *, conn: Optional[sqlite3.Connection] = None) -> Envelope:
    with _maybe_connect(conn) as active:
        row = active.execute("SELECT * FROM envelopes WHERE id = ?", (envelope_id,)).fetchone()
        if row is None:
            raise UnknownEntity('envelope', envelope_id)
        allocations = fetch_allocations(conn=active)
    return parse_envelope_row(row, allocations.get(envelope_id))


def fetch_income_sources(
    active_only: bool = False,
    *,
    conn: Optional[sqlite3.Connection] = None,
) -> List[IncomeSource]:
    sql = "SELECT * FROM income_sources"
    if active_only:
        sql += " WHERE is_active = 1"
    sql += " ORDER BY created_at ASC, id ASC"
    with _maybe_connect(conn) as active:
        rows = active.execute(sql).fetchall()
    return [parse_income_source_row(row) for row in rows]


def fetch_debts(
    envelope_id: Optional[str] = None,
    *,
    conn: Optional[sqlite3.Connection] = None,
) -> List[DebtItem]:
    sql = "SELECT * FROM debt_items"
    params: List[Any] = []
    if envelope_id is not None:
        sql += " WHERE envelope_id = ?"
        params.append(envelope_id)
    sql += " ORDER BY current_balance ASC, id ASC"
    with _maybe_connect(conn) as active:
        rows = active.execute(sql, params).fetchall()
    return [parse_debt_row(row) for row in rows]


def fetch_debt(debt_id: str, *, conn: Optional[sqlite3.Connection] = None) -> DebtItem:
    with _maybe_connect(conn) as active:
        row = active.execute("SELECT * FROM debt_items WHERE id = ?", (debt_id,)).fetchone()
    if row is None:
        raise UnknownEntity('debt', debt_id)
    return parse_debt_row(row)


def fetch_active_projection(
    debt_id: str,
    *,
    conn: Optional[sqlite3.Connection] = None,
) -> Optional[PayoffProjection]:
    with _maybe_connect(conn) as active:
        row = active.execute(
            "SELECT * FROM payoff_projections WHERE debt_id = ? AND is_active = 1",
            (debt_id,),
        ).fetchone()
    return parse_projection_row(row) if row is not None else None


def fetch_transfers(limit: Optional[int] = None) -> pd.DataFrame:
    """Transfer audit log, newest first."""
    sql = (
        "SELECT id, from_id AS 'From', to_id AS 'To', amount AS 'Amount', note AS 'Note', "
        "created_at AS 'Created At' FROM transfers ORDER BY created_at DESC, id DESC"
    )
    params: List[Any] = []
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))
    with connect() as conn:
        df = pd.read_sql_query(sql, conn, params=params)
    if not df.empty:
        df['Created At'] = pd.to_datetime(df['Created At'])
    return df
