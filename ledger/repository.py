from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from core.enums import FundraiserStatus, PaymentMethod, TransactionStatus
from core.errors import NotFound
from core.models import Fundraiser, Transaction, User


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LedgerRepository:
    """SQLite-backed entity store.

    Every call opens its own connection, so the repository can be shared by
    concurrent webhook workers. Multi-statement writes run inside
    ``BEGIN IMMEDIATE`` so SQLite serializes them against other writers.
    """

    def __init__(self, sqlite_path: str, busy_timeout_sec: float = 30.0) -> None:
        self.sqlite_path = Path(sqlite_path)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout_sec = float(busy_timeout_sec)
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.sqlite_path, timeout=self.busy_timeout_sec, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_id INTEGER UNIQUE NOT NULL,
                    username TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    is_admin INTEGER NOT NULL DEFAULT 0,
                    is_banned INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    last_active TEXT
                );

                CREATE TABLE IF NOT EXISTS fundraisers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    goal INTEGER NOT NULL CHECK (goal > 0),
                    raised INTEGER NOT NULL DEFAULT 0 CHECK (raised >= 0),
                    creator_id INTEGER NOT NULL,
                    creator_username TEXT,
                    status TEXT NOT NULL,
                    deadline TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_fundraisers_creator_created
                    ON fundraisers(creator_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    fundraiser_id INTEGER NOT NULL REFERENCES fundraisers(id),
                    donor_id INTEGER NOT NULL,
                    donor_username TEXT,
                    amount INTEGER NOT NULL CHECK (amount > 0),
                    currency TEXT NOT NULL,
                    status TEXT NOT NULL,
                    payment_method TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    confirmed_at TEXT,
                    rejected_at TEXT,
                    notes TEXT,
                    rejection_reason TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_transactions_fundraiser_status
                    ON transactions(fundraiser_id, status);
                CREATE INDEX IF NOT EXISTS idx_transactions_donor_created
                    ON transactions(donor_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS processed_updates (
                    event_id TEXT PRIMARY KEY,
                    received_at TEXT NOT NULL
                );
                """
            )

    def mark_event_processed(self, event_id: str) -> bool:
        key = (event_id or "").strip()
        if not key:
            return False

        with self._connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO processed_updates(event_id, received_at) VALUES(?, ?)",
                (key, _utc_now()),
            )
            return cur.rowcount > 0

    def touch_user(
        self,
        telegram_id: int,
        username: str | None,
        first_name: str | None,
        last_name: str | None,
    ) -> User:
        now = _utc_now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users(telegram_id, username, first_name, last_name, created_at, last_active)
                VALUES(?, ?, ?, ?, ?, ?)
                ON CONFLICT(telegram_id) DO UPDATE SET
                    username = excluded.username,
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    last_active = excluded.last_active
                """,
                (int(telegram_id), username, first_name, last_name, now, now),
            )
            row = conn.execute("SELECT * FROM users WHERE telegram_id = ?", (int(telegram_id),)).fetchone()
        return _row_to_user(row)

    def get_user(self, telegram_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE telegram_id = ?", (int(telegram_id),)).fetchone()
        return _row_to_user(row) if row is not None else None

    def set_user_flags(self, telegram_id: int, *, is_admin: bool | None = None, is_banned: bool | None = None) -> None:
        with self._connect() as conn:
            if is_admin is not None:
                conn.execute("UPDATE users SET is_admin = ? WHERE telegram_id = ?", (int(is_admin), int(telegram_id)))
            if is_banned is not None:
                conn.execute("UPDATE users SET is_banned = ? WHERE telegram_id = ?", (int(is_banned), int(telegram_id)))

    def create_fundraiser(
        self,
        title: str,
        description: str,
        goal: int,
        creator_id: int,
        creator_username: str | None,
        deadline: str | None = None,
    ) -> Fundraiser:
        now = _utc_now()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO fundraisers(
                    title, description, goal, raised, creator_id, creator_username,
                    status, deadline, created_at, updated_at
                ) VALUES(?, ?, ?, 0, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title,
                    description,
                    int(goal),
                    int(creator_id),
                    creator_username,
                    FundraiserStatus.ACTIVE.value,
                    deadline,
                    now,
                    now,
                ),
            )
            row = conn.execute("SELECT * FROM fundraisers WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _row_to_fundraiser(row)

    def get_fundraiser(self, fundraiser_id: int) -> Fundraiser | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM fundraisers WHERE id = ?", (int(fundraiser_id),)).fetchone()
        return _row_to_fundraiser(row) if row is not None else None

    def list_fundraisers(
        self,
        creator_id: int | None = None,
        status: FundraiserStatus | None = None,
    ) -> list[Fundraiser]:
        clauses: list[str] = []
        params: list[Any] = []
        if creator_id is not None:
            clauses.append("creator_id = ?")
            params.append(int(creator_id))
        if status is not None:
            clauses.append("status = ?")
            params.append(FundraiserStatus(status).value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM fundraisers {where} ORDER BY created_at DESC, id DESC",
                params,
            ).fetchall()
        return [_row_to_fundraiser(row) for row in rows]

    def transition_fundraiser(
        self,
        fundraiser_id: int,
        from_status: FundraiserStatus,
        to_status: FundraiserStatus,
    ) -> bool:
        now = _utc_now()
        completed_at = now if to_status == FundraiserStatus.COMPLETED else None
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE fundraisers
                SET status = ?, updated_at = ?, completed_at = COALESCE(?, completed_at)
                WHERE id = ? AND status = ?
                """,
                (
                    FundraiserStatus(to_status).value,
                    now,
                    completed_at,
                    int(fundraiser_id),
                    FundraiserStatus(from_status).value,
                ),
            )
            return cur.rowcount > 0

    def create_transaction(
        self,
        fundraiser_id: int,
        donor_id: int,
        donor_username: str | None,
        amount: int,
        currency: str,
        payment_method: str,
        notes: str | None,
    ) -> Transaction | None:
        now = _utc_now()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO transactions(
                    fundraiser_id, donor_id, donor_username, amount, currency,
                    status, payment_method, created_at, notes
                )
                SELECT ?, ?, ?, ?, ?, ?, ?, ?, ?
                WHERE EXISTS (SELECT 1 FROM fundraisers WHERE id = ? AND status = ?)
                """,
                (
                    int(fundraiser_id),
                    int(donor_id),
                    donor_username,
                    int(amount),
                    currency,
                    TransactionStatus.PENDING.value,
                    payment_method,
                    now,
                    notes,
                    int(fundraiser_id),
                    FundraiserStatus.ACTIVE.value,
                ),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM transactions WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _row_to_transaction(row)

    def get_transaction(self, transaction_id: int) -> Transaction | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM transactions WHERE id = ?", (int(transaction_id),)).fetchone()
        return _row_to_transaction(row) if row is not None else None

    def list_transactions(
        self,
        *,
        donor_id: int | None = None,
        fundraiser_id: int | None = None,
        status: TransactionStatus | None = None,
    ) -> list[Transaction]:
        clauses: list[str] = []
        params: list[Any] = []
        if donor_id is not None:
            clauses.append("donor_id = ?")
            params.append(int(donor_id))
        if fundraiser_id is not None:
            clauses.append("fundraiser_id = ?")
            params.append(int(fundraiser_id))
        if status is not None:
            clauses.append("status = ?")
            params.append(TransactionStatus(status).value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM transactions {where} ORDER BY created_at DESC, id DESC",
                params,
            ).fetchall()
        return [_row_to_transaction(row) for row in rows]

    def confirm_transaction(self, transaction_id: int) -> bool:
        now = _utc_now()
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT fundraiser_id, amount FROM transactions WHERE id = ? AND status = ?",
                (int(transaction_id), TransactionStatus.PENDING.value),
            ).fetchone()
            if row is None:
                return False
            conn.execute(
                "UPDATE transactions SET status = ?, confirmed_at = ? WHERE id = ? AND status = ?",
                (
                    TransactionStatus.CONFIRMED.value,
                    now,
                    int(transaction_id),
                    TransactionStatus.PENDING.value,
                ),
            )
            cur = conn.execute(
                "UPDATE fundraisers SET raised = raised + ?, updated_at = ? WHERE id = ?",
                (int(row["amount"]), now, int(row["fundraiser_id"])),
            )
            if cur.rowcount == 0:
                raise NotFound(f"Fundraiser #{row['fundraiser_id']} does not exist.")
            return True

    def reject_transaction(self, transaction_id: int, reason: str | None) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE transactions
                SET status = ?, rejected_at = ?, rejection_reason = ?
                WHERE id = ? AND status = ?
                """,
                (
                    TransactionStatus.REJECTED.value,
                    _utc_now(),
                    reason,
                    int(transaction_id),
                    TransactionStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def sum_confirmed_amount(self, fundraiser_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(amount), 0) AS total FROM transactions WHERE fundraiser_id = ? AND status = ?",
                (int(fundraiser_id), TransactionStatus.CONFIRMED.value),
            ).fetchone()
        return int(row["total"])


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        telegram_id=int(row["telegram_id"]),
        username=row["username"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        is_admin=bool(row["is_admin"]),
        is_banned=bool(row["is_banned"]),
        created_at=row["created_at"],
        last_active=row["last_active"],
    )


def _row_to_fundraiser(row: sqlite3.Row) -> Fundraiser:
    return Fundraiser(
        id=int(row["id"]),
        title=row["title"],
        description=row["description"],
        goal=int(row["goal"]),
        raised=int(row["raised"]),
        creator_id=int(row["creator_id"]),
        creator_username=row["creator_username"],
        status=FundraiserStatus(row["status"]),
        deadline=row["deadline"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
    )


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=int(row["id"]),
        fundraiser_id=int(row["fundraiser_id"]),
        donor_id=int(row["donor_id"]),
        donor_username=row["donor_username"],
        amount=int(row["amount"]),
        currency=row["currency"],
        status=TransactionStatus(row["status"]),
        payment_method=PaymentMethod(row["payment_method"]),
        notes=row["notes"],
        rejection_reason=row["rejection_reason"],
        created_at=row["created_at"],
        confirmed_at=row["confirmed_at"],
        rejected_at=row["rejected_at"],
    )
