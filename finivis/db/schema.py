"""Database schema DDL definitions and initialization utilities.

Tables:
  - profiles: customers and staff, KYC status and API token
  - user_roles: admin / forex_admin / moderator / user grants
  - kyc_documents: uploaded identity documents awaiting review
  - currency_exchange_orders: buy/sell forex bookings (advance + balance payments)
  - lrs_usage: USD amounts counted against the annual LRS limit
  - aml_flags: suspicious-activity flags awaiting compliance review
  - beneficiaries: overseas payees for remittance
  - wallets: per-currency customer wallets
  - transactions: remittance transfers and wallet deposits
  - service_applications: forex card and education loan applications
  - travel_insurance_policies: policies sold as facilitator
  - refundable_balances / refundable_balance_entries / refund_requests:
    customer credit ledger and bank refund workflow
  - admin_audit_logs: every admin mutation
  - metadata: key/value store (schema version, runtime settings)
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

PROFILES_DDL = f"""
CREATE TABLE IF NOT EXISTS profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    full_name TEXT,
    phone TEXT,
    pan_number TEXT,
    kyc_status TEXT NOT NULL DEFAULT 'pending'
        CHECK (kyc_status IN ('pending','submitted','verified','rejected')),
    api_token TEXT UNIQUE,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

USER_ROLES_DDL = f"""
CREATE TABLE IF NOT EXISTS user_roles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin','moderator','user','forex_admin')),
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    UNIQUE (user_id, role),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

KYC_DOCUMENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS kyc_documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    document_type TEXT NOT NULL,
    file_path TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending','verified','rejected')),
    admin_notes TEXT,
    verified_by INTEGER,
    verified_at TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

CURRENCY_EXCHANGE_ORDERS_DDL = f"""
CREATE TABLE IF NOT EXISTS currency_exchange_orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    order_number TEXT UNIQUE,
    exchange_type TEXT NOT NULL DEFAULT 'buy' CHECK (exchange_type IN ('buy','sell')),
    product_type TEXT NOT NULL,
    from_currency TEXT NOT NULL,
    to_currency TEXT NOT NULL,
    amount REAL NOT NULL CHECK (amount > 0), -- foreign currency amount
    exchange_rate REAL NOT NULL,
    base_rate REAL NOT NULL,
    markup_percent REAL NOT NULL DEFAULT 0,
    converted_amount REAL NOT NULL, -- INR amount
    service_fee REAL NOT NULL DEFAULT 0,
    total_amount REAL NOT NULL,
    usd_equivalent REAL,
    payment_option TEXT CHECK (payment_option IN ('advance','full')),
    advance_amount REAL NOT NULL DEFAULT 0,
    balance_amount REAL NOT NULL DEFAULT 0,
    advance_paid INTEGER NOT NULL DEFAULT 0,
    advance_paid_at TEXT,
    advance_payment_method TEXT,
    advance_reference TEXT,
    balance_paid INTEGER NOT NULL DEFAULT 0,
    balance_paid_at TEXT,
    balance_payment_method TEXT,
    balance_reference TEXT,
    rate_locked_at TEXT,
    rate_validity_minutes INTEGER,
    rate_expires_at TEXT,
    purpose TEXT,
    city TEXT NOT NULL,
    delivery_preference TEXT NOT NULL DEFAULT 'delivery'
        CHECK (delivery_preference IN ('delivery','pickup')),
    delivery_address TEXT,
    delivery_date TEXT,
    delivery_time_slot TEXT,
    denomination_breakdown TEXT, -- JSON {{"100": 5, ...}}
    travel_start_date TEXT,
    travel_end_date TEXT,
    destination_country TEXT,
    lrs_declaration_accepted INTEGER NOT NULL DEFAULT 0,
    documents TEXT, -- JSON list
    document_verification_status TEXT NOT NULL DEFAULT 'pending'
        CHECK (document_verification_status IN ('pending','verified','rejected','incomplete')),
    document_verification_notes TEXT,
    document_verified_at TEXT,
    document_verified_by INTEGER,
    compliance_status TEXT NOT NULL DEFAULT 'pending',
    admin_rejection_reason TEXT,
    notes TEXT,
    delivered_at TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

LRS_USAGE_DDL = f"""
CREATE TABLE IF NOT EXISTS lrs_usage (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    financial_year TEXT NOT NULL, -- '2025-26'
    service_type TEXT NOT NULL
        CHECK (service_type IN ('remittance','currency_exchange','forex_card')),
    amount_usd REAL NOT NULL CHECK (amount_usd > 0),
    purpose TEXT NOT NULL,
    transaction_id INTEGER,
    currency_exchange_order_id INTEGER,
    service_application_id INTEGER,
    transaction_date TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

AML_FLAGS_DDL = f"""
CREATE TABLE IF NOT EXISTS aml_flags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    transaction_id INTEGER,
    currency_exchange_order_id INTEGER,
    flag_type TEXT NOT NULL
        CHECK (flag_type IN ('high_value','repeated','unusual_country','limit_near')),
    flag_reason TEXT NOT NULL,
    severity TEXT NOT NULL DEFAULT 'medium' CHECK (severity IN ('low','medium','high')),
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending','reviewed','cleared','escalated')),
    reviewed_by INTEGER,
    reviewed_at TEXT,
    review_notes TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

BENEFICIARIES_DDL = f"""
CREATE TABLE IF NOT EXISTS beneficiaries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    country TEXT NOT NULL,
    currency TEXT NOT NULL,
    bank_name TEXT,
    account_number TEXT,
    iban TEXT,
    swift_code TEXT,
    relationship TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

WALLETS_DDL = f"""
CREATE TABLE IF NOT EXISTS wallets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    currency TEXT NOT NULL,
    balance REAL NOT NULL DEFAULT 0 CHECK (balance >= 0),
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    UNIQUE (user_id, currency),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

TRANSACTIONS_DDL = f"""
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    reference_number TEXT UNIQUE,
    transaction_type TEXT NOT NULL CHECK (transaction_type IN ('remittance','deposit')),
    beneficiary_id INTEGER,
    wallet_id INTEGER,
    product_type TEXT,
    source_amount REAL NOT NULL, -- INR
    source_currency TEXT NOT NULL DEFAULT 'INR',
    destination_amount REAL,
    destination_currency TEXT,
    exchange_rate REAL,
    fee REAL NOT NULL DEFAULT 0,
    tds_amount REAL NOT NULL DEFAULT 0,
    total_amount REAL NOT NULL,
    usd_equivalent REAL,
    purpose TEXT,
    payment_method TEXT,
    payment_reference TEXT,
    status TEXT NOT NULL DEFAULT 'payment_pending',
    rejection_reason TEXT,
    cancellation_reason TEXT,
    cancellation_requested_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE,
    FOREIGN KEY (beneficiary_id) REFERENCES beneficiaries(id),
    FOREIGN KEY (wallet_id) REFERENCES wallets(id)
);
"""

SERVICE_APPLICATIONS_DDL = f"""
CREATE TABLE IF NOT EXISTS service_applications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    service_type TEXT NOT NULL CHECK (service_type IN ('forex_card','education_loan')),
    application_status TEXT NOT NULL DEFAULT 'submitted',
    application_data TEXT, -- JSON
    card_type TEXT,
    load_amount REAL,
    load_currency TEXT,
    usd_equivalent REAL,
    documents TEXT, -- JSON list
    admin_notes TEXT,
    action_required TEXT,
    rejection_reason TEXT,
    reupload_reason TEXT,
    reupload_requested_at TEXT,
    documents_resubmitted_at TEXT,
    submitted_at TEXT,
    reviewed_at TEXT,
    approved_at TEXT,
    rejected_at TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

TRAVEL_INSURANCE_POLICIES_DDL = f"""
CREATE TABLE IF NOT EXISTS travel_insurance_policies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    policy_number TEXT UNIQUE,
    plan_type TEXT NOT NULL,
    selected_plan TEXT NOT NULL,
    destination_country TEXT NOT NULL,
    travel_start_date TEXT NOT NULL,
    travel_end_date TEXT NOT NULL,
    trip_duration INTEGER NOT NULL,
    number_of_travellers INTEGER NOT NULL DEFAULT 1,
    travellers TEXT NOT NULL, -- JSON list
    premium_amount REAL NOT NULL CHECK (premium_amount >= 0),
    facilitator_fee REAL NOT NULL DEFAULT 0,
    add_ons TEXT, -- JSON list
    partner_insurer_name TEXT,
    partner_policy_reference TEXT,
    disclaimer_accepted INTEGER NOT NULL DEFAULT 0,
    policy_status TEXT NOT NULL DEFAULT 'pending'
        CHECK (policy_status IN ('pending','issued','cancelled')),
    payment_status TEXT NOT NULL DEFAULT 'pending'
        CHECK (payment_status IN ('pending','paid','refunded')),
    payment_method TEXT,
    payment_transaction_id TEXT,
    paid_at TEXT,
    issued_at TEXT,
    has_claim INTEGER NOT NULL DEFAULT 0,
    claim_status TEXT,
    claim_details TEXT, -- JSON
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

REFUNDABLE_BALANCES_DDL = f"""
CREATE TABLE IF NOT EXISTS refundable_balances (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL UNIQUE,
    balance_amount REAL NOT NULL DEFAULT 0 CHECK (balance_amount >= 0),
    currency TEXT NOT NULL DEFAULT 'INR',
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
);
"""

REFUNDABLE_BALANCE_ENTRIES_DDL = f"""
CREATE TABLE IF NOT EXISTS refundable_balance_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    refundable_balance_id INTEGER NOT NULL,
    entry_type TEXT NOT NULL CHECK (entry_type IN ('credit','debit')),
    amount REAL NOT NULL CHECK (amount > 0),
    reason TEXT NOT NULL,
    source_type TEXT,
    source_id TEXT,
    source_reference TEXT,
    description TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (refundable_balance_id) REFERENCES refundable_balances(id) ON DELETE CASCADE
);
"""

REFUND_REQUESTS_DDL = f"""
CREATE TABLE IF NOT EXISTS refund_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    refundable_balance_id INTEGER NOT NULL,
    requested_amount REAL NOT NULL CHECK (requested_amount > 0),
    bank_account_name TEXT NOT NULL,
    bank_account_number TEXT NOT NULL,
    bank_ifsc TEXT NOT NULL,
    bank_name TEXT,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending','approved','processed','rejected')),
    admin_notes TEXT,
    processed_by INTEGER,
    processed_at TEXT,
    rejection_reason TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (refundable_balance_id) REFERENCES refundable_balances(id) ON DELETE CASCADE
);
"""

ADMIN_AUDIT_LOGS_DDL = f"""
CREATE TABLE IF NOT EXISTS admin_audit_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    admin_user_id INTEGER NOT NULL,
    action TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    details TEXT, -- JSON
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

INDEX_DDL: Sequence[str] = (
    "CREATE INDEX IF NOT EXISTS idx_kyc_documents_user ON kyc_documents(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_exchange_orders_user ON currency_exchange_orders(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_exchange_orders_status ON currency_exchange_orders(status);",
    "CREATE INDEX IF NOT EXISTS idx_lrs_usage_user_fy ON lrs_usage(user_id, financial_year);",
    "CREATE INDEX IF NOT EXISTS idx_aml_flags_status ON aml_flags(status, severity);",
    "CREATE INDEX IF NOT EXISTS idx_beneficiaries_user ON beneficiaries(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_applications_user ON service_applications(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_policies_user ON travel_insurance_policies(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_balance_entries_user ON refundable_balance_entries(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_refund_requests_user ON refund_requests(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_audit_entity ON admin_audit_logs(entity_type, entity_id);",
)

DDL_ORDER: Sequence[str] = (
    PROFILES_DDL,
    USER_ROLES_DDL,
    KYC_DOCUMENTS_DDL,
    CURRENCY_EXCHANGE_ORDERS_DDL,
    LRS_USAGE_DDL,
    AML_FLAGS_DDL,
    BENEFICIARIES_DDL,
    WALLETS_DDL,
    TRANSACTIONS_DDL,
    SERVICE_APPLICATIONS_DDL,
    TRAVEL_INSURANCE_POLICIES_DDL,
    REFUNDABLE_BALANCES_DDL,
    REFUNDABLE_BALANCE_ENTRIES_DDL,
    REFUND_REQUESTS_DDL,
    ADMIN_AUDIT_LOGS_DDL,
    METADATA_DDL,
)


def init_db(path: Path) -> None:
    """Create all tables and indexes idempotently.

    Parameters
    ----------
    path: Path to SQLite database file.
    """
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        for ddl in DDL_ORDER:
            cur.execute(ddl)
        for ddl in INDEX_DDL:
            cur.execute(ddl)
        conn.commit()
    finally:
        conn.close()
