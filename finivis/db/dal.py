"""Data Access Layer.

Responsibilities
----------------
- Provide CRUD helpers for every table in ``finivis.db.schema``.
- Encode/decode JSON columns so callers only ever see Python structures.
- Implement the multi-row financial operations (refundable balance credit and
  debit, bank refund processing, wallet deposits) as single ``BEGIN IMMEDIATE``
  transactions so a balance check and its mutation can not interleave.
- Offer compare-and-set updates (``expected_statuses``) so two admins acting on the
  same row can not both move it forward.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import json
from pathlib import Path
import sqlite3
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from finivis.core.errors import InsufficientBalanceError, NotFoundError
from finivis.services.money import round2

UTC_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

JSON_COLUMNS = {
    "denomination_breakdown",
    "documents",
    "application_data",
    "travellers",
    "add_ons",
    "claim_details",
    "details",
}

REFERENCE_PREFIXES = {
    "currency_exchange_orders": ("order_number", "CX"),
    "travel_insurance_policies": ("policy_number", "TI"),
}
TRANSACTION_PREFIXES = {"remittance": "RMT", "deposit": "DEP"}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _encode(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS and value is not None and not isinstance(value, str):
        return json.dumps(value)
    return value


def _row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    data = dict(row)
    for col in JSON_COLUMNS.intersection(data):
        raw = data[col]
        if isinstance(raw, str):
            try:
                data[col] = json.loads(raw)
            except (TypeError, ValueError):
                pass  # leave malformed legacy values as text
    return data


def _reference(prefix: str, row_id: int) -> str:
    return f"{prefix}{datetime.now(timezone.utc):%Y%m%d}{row_id:05d}"


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    # ------------------------------------------------------------------
    # Connection helpers
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor inside an immediate (write-locked) transaction."""
        conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        cur = conn.cursor()
        cur.execute("BEGIN IMMEDIATE")
        try:
            yield cur
            cur.execute("COMMIT")
        except BaseException:
            cur.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _insert(self, cur: sqlite3.Cursor, table: str, values: Dict[str, Any]) -> int:
        columns = list(values.keys())
        placeholders = ", ".join("?" for _ in columns)
        cur.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            [_encode(c, values[c]) for c in columns],
        )
        return int(cur.lastrowid)

    def _update(
        self,
        cur: sqlite3.Cursor,
        table: str,
        row_id: int,
        fields: Dict[str, Any],
        *,
        status_column: Optional[str] = None,
        expected: Optional[Iterable[str]] = None,
    ) -> bool:
        if not fields:
            return True
        assignments = [f"{c} = ?" for c in fields]
        params: List[Any] = [_encode(c, v) for c, v in fields.items()]
        sql = f"UPDATE {table} SET {', '.join(assignments)}, updated_at = ({UTC_NOW_SQL}) WHERE id = ?"
        params.append(row_id)
        if status_column and expected is not None:
            expected = list(expected)
            sql += f" AND {status_column} IN ({', '.join('?' for _ in expected)})"
            params.extend(expected)
        cur.execute(sql, params)
        return cur.rowcount > 0

    def _get(self, table: str, row_id: int) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
            return _row_to_dict(cur.fetchone())

    def _list(
        self,
        table: str,
        filters: Dict[str, Any],
        order_by: str = "created_at DESC, id DESC",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        for column, value in filters.items():
            if value is None:
                continue
            clauses.append(f"{column} = ?")
            params.append(value)
        sql = f"SELECT * FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {order_by}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(sql, params)
            return [_row_to_dict(r) for r in cur.fetchall()]  # type: ignore[misc]

    def _insert_with_reference(self, table: str, values: Dict[str, Any]) -> int:
        column, prefix = REFERENCE_PREFIXES[table]
        with self.transaction() as cur:
            row_id = self._insert(cur, table, values)
            cur.execute(
                f"UPDATE {table} SET {column} = ? WHERE id = ?",
                (_reference(prefix, row_id), row_id),
            )
            return row_id

    # ------------------------------------------------------------------
    # Metadata
    def get_metadata(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT value FROM metadata WHERE key = ?", (key,))
            row = cur.fetchone()
            return row[0] if row else None

    def set_metadata(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO metadata (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = ({UTC_NOW_SQL})
                """,
                (key, value),
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Profiles & roles
    def create_profile(
        self,
        email: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        pan_number: Optional[str] = None,
        api_token: Optional[str] = None,
        kyc_status: str = "pending",
    ) -> int:
        with self.transaction() as cur:
            return self._insert(
                cur,
                "profiles",
                {
                    "email": email.strip().lower(),
                    "full_name": full_name,
                    "phone": phone,
                    "pan_number": pan_number,
                    "api_token": api_token,
                    "kyc_status": kyc_status,
                },
            )

    def get_profile(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self._get("profiles", user_id)

    def get_profile_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM profiles WHERE api_token = ?", (token,))
            return _row_to_dict(cur.fetchone())

    def get_profile_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM profiles WHERE email = ?", (email.strip().lower(),)
            )
            return _row_to_dict(cur.fetchone())

    def update_profile(self, user_id: int, fields: Dict[str, Any]) -> bool:
        with self.transaction() as cur:
            return self._update(cur, "profiles", user_id, fields)

    def set_kyc_status(self, user_id: int, status: str) -> None:
        with self.transaction() as cur:
            if not self._update(cur, "profiles", user_id, {"kyc_status": status}):
                raise NotFoundError("Account not found.")

    def add_role(self, user_id: int, role: str) -> None:
        with self.transaction() as cur:
            cur.execute(
                "INSERT OR IGNORE INTO user_roles (user_id, role) VALUES (?, ?)",
                (user_id, role),
            )

    def get_roles(self, user_id: int) -> List[str]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT role FROM user_roles WHERE user_id = ? ORDER BY role", (user_id,)
            )
            return [r[0] for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # KYC documents
    def insert_kyc_document(self, user_id: int, document_type: str, file_path: str) -> int:
        with self.transaction() as cur:
            doc_id = self._insert(
                cur,
                "kyc_documents",
                {"user_id": user_id, "document_type": document_type, "file_path": file_path},
            )
            # first upload moves a pending profile into review
            cur.execute(
                f"UPDATE profiles SET kyc_status = 'submitted', updated_at = ({UTC_NOW_SQL}) "
                "WHERE id = ? AND kyc_status IN ('pending','rejected')",
                (user_id,),
            )
            return doc_id

    def get_kyc_document(self, doc_id: int) -> Optional[Dict[str, Any]]:
        return self._get("kyc_documents", doc_id)

    def list_kyc_documents(
        self, user_id: Optional[int] = None, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._list("kyc_documents", {"user_id": user_id, "status": status})

    def review_kyc_document(
        self, doc_id: int, status: str, admin_id: int, notes: Optional[str] = None
    ) -> str:
        """Set a document's review outcome and return the resulting profile KYC status."""
        with self.transaction() as cur:
            cur.execute("SELECT user_id FROM kyc_documents WHERE id = ?", (doc_id,))
            row = cur.fetchone()
            if not row:
                raise NotFoundError("Record not found.")
            user_id = int(row[0])
            self._update(
                cur,
                "kyc_documents",
                doc_id,
                {
                    "status": status,
                    "admin_notes": notes,
                    "verified_by": admin_id,
                    "verified_at": utc_now_iso(),
                },
            )
            cur.execute(
                "SELECT status, COUNT(*) FROM kyc_documents WHERE user_id = ? GROUP BY status",
                (user_id,),
            )
            counts = {r[0]: int(r[1]) for r in cur.fetchall()}
            if counts.get("rejected"):
                profile_status = "rejected"
            elif counts.get("pending"):
                profile_status = "submitted"
            else:
                profile_status = "verified"
            self._update(cur, "profiles", user_id, {"kyc_status": profile_status})
            return profile_status

    # ------------------------------------------------------------------
    # Currency exchange orders
    def insert_exchange_order(self, values: Dict[str, Any]) -> int:
        return self._insert_with_reference("currency_exchange_orders", values)

    def get_exchange_order(self, order_id: int) -> Optional[Dict[str, Any]]:
        return self._get("currency_exchange_orders", order_id)

    def list_exchange_orders(
        self, user_id: Optional[int] = None, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._list("currency_exchange_orders", {"user_id": user_id, "status": status})

    def update_exchange_order(
        self,
        order_id: int,
        fields: Dict[str, Any],
        expected_statuses: Optional[Sequence[str]] = None,
    ) -> bool:
        with self.transaction() as cur:
            return self._update(
                cur,
                "currency_exchange_orders",
                order_id,
                fields,
                status_column="status",
                expected=expected_statuses,
            )

    # ------------------------------------------------------------------
    # LRS usage
    def insert_lrs_usage(self, values: Dict[str, Any]) -> int:
        with self.transaction() as cur:
            return self._insert(cur, "lrs_usage", values)

    def lrs_totals(self, user_id: int, financial_year: str) -> Dict[str, float]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT COALESCE(ROUND(SUM(amount_usd), 2), 0.0), COUNT(*)
                FROM lrs_usage WHERE user_id = ? AND financial_year = ?
                """,
                (user_id, financial_year),
            )
            total, count = cur.fetchone()
            return {"total_used": float(total or 0.0), "transaction_count": int(count)}

    def list_lrs_usage(
        self, user_id: Optional[int] = None, financial_year: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._list(
            "lrs_usage", {"user_id": user_id, "financial_year": financial_year}
        )

    def lrs_summary_by_user(self, financial_year: str) -> List[Dict[str, Any]]:
        """Per-user LRS totals for one financial year, with profile name and email."""
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT u.user_id,
                       p.email,
                       p.full_name,
                       ROUND(SUM(u.amount_usd), 2) AS total_used,
                       COUNT(*) AS transaction_count,
                       MAX(u.transaction_date) AS last_transaction
                FROM lrs_usage u
                LEFT JOIN profiles p ON p.id = u.user_id
                WHERE u.financial_year = ?
                GROUP BY u.user_id
                ORDER BY total_used DESC, u.user_id ASC
                """,
                (financial_year,),
            )
            return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # AML flags
    def insert_aml_flag(self, values: Dict[str, Any]) -> int:
        with self.transaction() as cur:
            return self._insert(cur, "aml_flags", values)

    def get_aml_flag(self, flag_id: int) -> Optional[Dict[str, Any]]:
        return self._get("aml_flags", flag_id)

    def list_aml_flags(
        self,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        user_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        return self._list(
            "aml_flags",
            {"status": status, "severity": severity, "user_id": user_id},
            limit=limit,
        )

    def review_aml_flag(
        self, flag_id: int, status: str, admin_id: int, notes: Optional[str] = None
    ) -> bool:
        with self.transaction() as cur:
            return self._update(
                cur,
                "aml_flags",
                flag_id,
                {
                    "status": status,
                    "review_notes": notes,
                    "reviewed_by": admin_id,
                    "reviewed_at": utc_now_iso(),
                },
            )

    # ------------------------------------------------------------------
    # Beneficiaries
    def insert_beneficiary(self, values: Dict[str, Any]) -> int:
        with self.transaction() as cur:
            return self._insert(cur, "beneficiaries", values)

    def get_beneficiary(self, beneficiary_id: int) -> Optional[Dict[str, Any]]:
        return self._get("beneficiaries", beneficiary_id)

    def list_beneficiaries(self, user_id: int, active_only: bool = True) -> List[Dict[str, Any]]:
        return self._list(
            "beneficiaries",
            {"user_id": user_id, "is_active": 1 if active_only else None},
            order_by="name ASC, id ASC",
        )

    def update_beneficiary(self, beneficiary_id: int, fields: Dict[str, Any]) -> bool:
        with self.transaction() as cur:
            return self._update(cur, "beneficiaries", beneficiary_id, fields)

    # ------------------------------------------------------------------
    # Wallets
    def get_or_create_wallet(self, user_id: int, currency: str) -> Dict[str, Any]:
        with self.transaction() as cur:
            cur.execute(
                "INSERT OR IGNORE INTO wallets (user_id, currency) VALUES (?, ?)",
                (user_id, currency),
            )
            cur.execute(
                "SELECT * FROM wallets WHERE user_id = ? AND currency = ?",
                (user_id, currency),
            )
            return _row_to_dict(cur.fetchone())  # type: ignore[return-value]

    def list_wallets(self, user_id: int) -> List[Dict[str, Any]]:
        return self._list("wallets", {"user_id": user_id}, order_by="currency ASC")

    def deposit_to_wallet(
        self, wallet_id: int, amount: float, payment_method: str
    ) -> Dict[str, Any]:
        """Credit a wallet and record the deposit transaction atomically."""
        amount = round2(amount)
        with self.transaction() as cur:
            cur.execute("SELECT * FROM wallets WHERE id = ?", (wallet_id,))
            wallet = cur.fetchone()
            if not wallet:
                raise NotFoundError("Record not found.")
            new_balance = round2(float(wallet["balance"]) + amount)
            self._update(cur, "wallets", wallet_id, {"balance": new_balance})
            txn_id = self._insert(
                cur,
                "transactions",
                {
                    "user_id": wallet["user_id"],
                    "transaction_type": "deposit",
                    "wallet_id": wallet_id,
                    "source_amount": amount,
                    "source_currency": wallet["currency"],
                    "total_amount": amount,
                    "payment_method": payment_method,
                    "status": "completed",
                    "completed_at": utc_now_iso(),
                },
            )
            reference = _reference(TRANSACTION_PREFIXES["deposit"], txn_id)
            cur.execute(
                "UPDATE transactions SET reference_number = ? WHERE id = ?",
                (reference, txn_id),
            )
            return {
                "wallet_id": wallet_id,
                "transaction_id": txn_id,
                "reference_number": reference,
                "new_balance": new_balance,
                "currency": wallet["currency"],
            }

    # ------------------------------------------------------------------
    # Transactions (remittance)
    def insert_transaction(self, values: Dict[str, Any]) -> int:
        prefix = TRANSACTION_PREFIXES[values["transaction_type"]]
        with self.transaction() as cur:
            txn_id = self._insert(cur, "transactions", values)
            cur.execute(
                "UPDATE transactions SET reference_number = ? WHERE id = ?",
                (_reference(prefix, txn_id), txn_id),
            )
            return txn_id

    def get_transaction(self, txn_id: int) -> Optional[Dict[str, Any]]:
        return self._get("transactions", txn_id)

    def list_transactions(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        transaction_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self._list(
            "transactions",
            {"user_id": user_id, "status": status, "transaction_type": transaction_type},
        )

    def update_transaction(
        self,
        txn_id: int,
        fields: Dict[str, Any],
        expected_statuses: Optional[Sequence[str]] = None,
    ) -> bool:
        with self.transaction() as cur:
            return self._update(
                cur,
                "transactions",
                txn_id,
                fields,
                status_column="status",
                expected=expected_statuses,
            )

    # ------------------------------------------------------------------
    # Service applications
    def insert_application(self, values: Dict[str, Any]) -> int:
        with self.transaction() as cur:
            return self._insert(cur, "service_applications", values)

    def get_application(self, app_id: int) -> Optional[Dict[str, Any]]:
        return self._get("service_applications", app_id)

    def list_applications(
        self,
        user_id: Optional[int] = None,
        service_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self._list(
            "service_applications",
            {"user_id": user_id, "service_type": service_type, "application_status": status},
        )

    def update_application(
        self,
        app_id: int,
        fields: Dict[str, Any],
        expected_statuses: Optional[Sequence[str]] = None,
    ) -> bool:
        with self.transaction() as cur:
            return self._update(
                cur,
                "service_applications",
                app_id,
                fields,
                status_column="application_status",
                expected=expected_statuses,
            )

    # ------------------------------------------------------------------
    # Travel insurance
    def insert_policy(self, values: Dict[str, Any]) -> int:
        return self._insert_with_reference("travel_insurance_policies", values)

    def get_policy(self, policy_id: int) -> Optional[Dict[str, Any]]:
        return self._get("travel_insurance_policies", policy_id)

    def list_policies(
        self,
        user_id: Optional[int] = None,
        policy_status: Optional[str] = None,
        payment_status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self._list(
            "travel_insurance_policies",
            {"user_id": user_id, "policy_status": policy_status, "payment_status": payment_status},
        )

    def update_policy(
        self,
        policy_id: int,
        fields: Dict[str, Any],
        expected_statuses: Optional[Sequence[str]] = None,
    ) -> bool:
        with self.transaction() as cur:
            return self._update(
                cur,
                "travel_insurance_policies",
                policy_id,
                fields,
                status_column="policy_status",
                expected=expected_statuses,
            )

    # ------------------------------------------------------------------
    # Refundable balance ledger
    def get_refundable_balance(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM refundable_balances WHERE user_id = ?", (user_id,))
            return _row_to_dict(cur.fetchone())

    def list_positive_balances(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT b.*, p.email, p.full_name
                FROM refundable_balances b JOIN profiles p ON p.id = b.user_id
                WHERE b.balance_amount > 0
                ORDER BY b.balance_amount DESC, b.id ASC
                """
            )
            return [_row_to_dict(r) for r in cur.fetchall()]  # type: ignore[misc]

    def list_balance_entries(self, user_id: int) -> List[Dict[str, Any]]:
        return self._list("refundable_balance_entries", {"user_id": user_id})

    def _ensure_balance_row(self, cur: sqlite3.Cursor, user_id: int) -> sqlite3.Row:
        cur.execute(
            "INSERT OR IGNORE INTO refundable_balances (user_id) VALUES (?)", (user_id,)
        )
        cur.execute("SELECT * FROM refundable_balances WHERE user_id = ?", (user_id,))
        return cur.fetchone()

    def _apply_balance_entry(
        self,
        cur: sqlite3.Cursor,
        user_id: int,
        entry_type: str,
        amount: float,
        reason: str,
        source_type: Optional[str],
        source_id: Optional[str],
        source_reference: Optional[str],
        description: Optional[str],
    ) -> Dict[str, Any]:
        amount = round2(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        balance = self._ensure_balance_row(cur, user_id)
        current = float(balance["balance_amount"])
        if entry_type == "debit":
            if amount > current:
                raise InsufficientBalanceError(
                    f"Insufficient refundable balance. Available: {current:.2f}, requested: {amount:.2f}"
                )
            new_balance = round2(current - amount)
        else:
            new_balance = round2(current + amount)
        self._update(
            cur, "refundable_balances", int(balance["id"]), {"balance_amount": new_balance}
        )
        entry_id = self._insert(
            cur,
            "refundable_balance_entries",
            {
                "user_id": user_id,
                "refundable_balance_id": int(balance["id"]),
                "entry_type": entry_type,
                "amount": amount,
                "reason": reason,
                "source_type": source_type,
                "source_id": source_id,
                "source_reference": source_reference,
                "description": description,
            },
        )
        return {
            "balance_id": int(balance["id"]),
            "entry_id": entry_id,
            "new_balance": new_balance,
        }

    def credit_refundable_balance(
        self,
        user_id: int,
        amount: float,
        reason: str,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
        source_reference: Optional[str] = None,
        description: Optional[str] = None,
        cur: Optional[sqlite3.Cursor] = None,
    ) -> Dict[str, Any]:
        """Credit the ledger; joins the caller's transaction when ``cur`` is given."""
        args = (user_id, "credit", amount, reason, source_type, source_id, source_reference, description)
        if cur is not None:
            return self._apply_balance_entry(cur, *args)
        with self.transaction() as tx:
            return self._apply_balance_entry(tx, *args)

    def debit_refundable_balance(
        self,
        user_id: int,
        amount: float,
        reason: str,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
        description: Optional[str] = None,
        cur: Optional[sqlite3.Cursor] = None,
    ) -> Dict[str, Any]:
        args = (user_id, "debit", amount, reason, source_type, source_id, None, description)
        if cur is not None:
            return self._apply_balance_entry(cur, *args)
        with self.transaction() as tx:
            return self._apply_balance_entry(tx, *args)

    def update_and_credit(
        self,
        table: str,
        row_id: int,
        fields: Dict[str, Any],
        status_column: str,
        expected_statuses: Sequence[str],
        credit: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Compare-and-set a row's status and optionally credit the ledger atomically.

        Returns ``None`` when the row was not in an expected status, otherwise
        the credit result (empty dict when no credit was requested).
        """
        with self.transaction() as cur:
            if not self._update(
                cur,
                table,
                row_id,
                fields,
                status_column=status_column,
                expected=expected_statuses,
            ):
                return None
            if not credit:
                return {}
            return self.credit_refundable_balance(cur=cur, **credit)

    # Refund requests ----------------------------------------------------
    def insert_refund_request(self, values: Dict[str, Any]) -> int:
        with self.transaction() as cur:
            return self._insert(cur, "refund_requests", values)

    def get_refund_request(self, request_id: int) -> Optional[Dict[str, Any]]:
        return self._get("refund_requests", request_id)

    def list_refund_requests(
        self, user_id: Optional[int] = None, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._list("refund_requests", {"user_id": user_id, "status": status})

    def update_refund_request(
        self,
        request_id: int,
        fields: Dict[str, Any],
        expected_statuses: Optional[Sequence[str]] = None,
    ) -> bool:
        with self.transaction() as cur:
            return self._update(
                cur,
                "refund_requests",
                request_id,
                fields,
                status_column="status",
                expected=expected_statuses,
            )

    def process_bank_refund(
        self, request_id: int, admin_id: int, allowed_statuses: Sequence[str]
    ) -> Dict[str, Any]:
        """Debit the ledger and mark the request processed in one transaction."""
        with self.transaction() as cur:
            cur.execute("SELECT * FROM refund_requests WHERE id = ?", (request_id,))
            request = cur.fetchone()
            if not request:
                raise NotFoundError("Refund request not found.")
            if request["status"] not in allowed_statuses:
                return {"processed": False, "status": request["status"]}
            result = self._apply_balance_entry(
                cur,
                int(request["user_id"]),
                "debit",
                float(request["requested_amount"]),
                "bank_refund",
                "refund_request",
                str(request_id),
                None,
                f"Bank refund to account ending {str(request['bank_account_number'])[-4:]}",
            )
            self._update(
                cur,
                "refund_requests",
                request_id,
                {
                    "status": "processed",
                    "processed_by": admin_id,
                    "processed_at": utc_now_iso(),
                },
            )
            return {"processed": True, "status": "processed", **result}

    # ------------------------------------------------------------------
    # Audit log
    def insert_audit_log(
        self,
        admin_user_id: int,
        action: str,
        entity_type: str,
        entity_id: Any,
        details: Optional[Dict[str, Any]] = None,
    ) -> int:
        with self.transaction() as cur:
            return self._insert(
                cur,
                "admin_audit_logs",
                {
                    "admin_user_id": admin_user_id,
                    "action": action,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "details": details or {},
                },
            )

    def list_audit_logs(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        return self._list(
            "admin_audit_logs",
            {"entity_type": entity_type, "entity_id": entity_id},
            limit=limit,
        )
