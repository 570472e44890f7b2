"""SQL table definitions.

Energy and money columns are TEXT holding canonical fixed-scale decimals
(kWh 4 places, money 2 places, rates 4 places, VAT percent 2 places).
"""

SCHEMA_VERSION = 1

TABLES = [
    # ── Config ──────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS config_versions (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        config_json     TEXT NOT NULL,
        changed_keys    TEXT,
        created_at      TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
        source          TEXT NOT NULL DEFAULT 'user'
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_config_versions_created ON config_versions(created_at)",

    # ── Organizations & Members ─────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS organizations (
        id                  INTEGER PRIMARY KEY AUTOINCREMENT,
        name                TEXT NOT NULL,
        address             TEXT NOT NULL DEFAULT '',
        postal_code         TEXT NOT NULL DEFAULT '',
        city                TEXT NOT NULL DEFAULT '',
        country             TEXT NOT NULL DEFAULT 'CH',
        contact_email       TEXT,
        distribution_policy TEXT NOT NULL DEFAULT 'prorata'
                            CHECK (distribution_policy IN ('prorata', 'equal', 'priority')),
        currency            TEXT NOT NULL DEFAULT 'CHF',
        payment_term_days   INTEGER,
        locale              TEXT NOT NULL DEFAULT 'fr',
        iban                TEXT,
        payee_name          TEXT,
        payee_address       TEXT,
        payee_postal_code   TEXT,
        payee_city          TEXT,
        payee_country       TEXT,
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS members (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        organization_id INTEGER NOT NULL,
        user_id         TEXT,
        role            TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('admin', 'member')),
        first_name      TEXT NOT NULL DEFAULT '',
        last_name       TEXT NOT NULL DEFAULT '',
        address         TEXT NOT NULL DEFAULT '',
        postal_code     TEXT NOT NULL DEFAULT '',
        city            TEXT NOT NULL DEFAULT '',
        country         TEXT NOT NULL DEFAULT 'CH',
        email           TEXT,
        locale          TEXT,
        priority_level  INTEGER NOT NULL DEFAULT 5,
        created_at      TEXT NOT NULL,
        FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_members_org ON members(organization_id)",
    """CREATE UNIQUE INDEX IF NOT EXISTS idx_members_org_user
       ON members(organization_id, user_id) WHERE user_id IS NOT NULL""",

    # ── Metering ────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS meter_points (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        organization_id INTEGER NOT NULL,
        member_id       INTEGER NOT NULL,
        pod_code        TEXT NOT NULL,
        category        TEXT NOT NULL DEFAULT 'consumer'
                        CHECK (category IN ('consumer', 'producer', 'prosumer')),
        created_at      TEXT NOT NULL,
        FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE,
        FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE CASCADE,
        UNIQUE (organization_id, pod_code)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS load_curve_batches (
        id                      INTEGER PRIMARY KEY AUTOINCREMENT,
        organization_id         INTEGER NOT NULL,
        meter_point_id          INTEGER NOT NULL,
        year                    INTEGER NOT NULL,
        month                   INTEGER NOT NULL,
        period_start            TEXT NOT NULL,
        period_end              TEXT NOT NULL,
        reading_count           INTEGER NOT NULL,
        total_consumption_kwh   TEXT NOT NULL,
        total_production_kwh    TEXT NOT NULL,
        source_name             TEXT,
        status                  TEXT NOT NULL DEFAULT 'active'
                                CHECK (status IN ('active', 'superseded')),
        superseded_by           INTEGER,
        created_at              TEXT NOT NULL,
        FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE,
        FOREIGN KEY (meter_point_id) REFERENCES meter_points(id) ON DELETE CASCADE
    )
    """,
    """CREATE INDEX IF NOT EXISTS idx_batches_period
       ON load_curve_batches(organization_id, year, month, status)""",
    "CREATE INDEX IF NOT EXISTS idx_batches_meter ON load_curve_batches(meter_point_id, status)",
    """
    CREATE TABLE IF NOT EXISTS interval_readings (
        batch_id        INTEGER NOT NULL,
        ts              TEXT NOT NULL,
        consumed_kwh    TEXT NOT NULL,
        produced_kwh    TEXT NOT NULL,
        PRIMARY KEY (batch_id, ts),
        FOREIGN KEY (batch_id) REFERENCES load_curve_batches(id) ON DELETE CASCADE
    )
    """,

    # ── Allocation ──────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS monthly_aggregates (
        id                          INTEGER PRIMARY KEY AUTOINCREMENT,
        organization_id             INTEGER NOT NULL,
        member_id                   INTEGER NOT NULL,
        year                        INTEGER NOT NULL,
        month                       INTEGER NOT NULL,
        total_consumption_kwh       TEXT NOT NULL,
        total_production_kwh        TEXT NOT NULL,
        self_consumption_kwh        TEXT NOT NULL,
        community_consumption_kwh   TEXT NOT NULL,
        grid_consumption_kwh        TEXT NOT NULL,
        exported_to_community_kwh   TEXT NOT NULL,
        exported_to_grid_kwh        TEXT NOT NULL,
        policy                      TEXT NOT NULL,
        computed_at                 TEXT NOT NULL,
        FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE,
        FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE CASCADE,
        UNIQUE (organization_id, member_id, year, month)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_aggregates_period ON monthly_aggregates(organization_id, year, month)",

    # ── Tariffs ─────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS tariff_plans (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        organization_id INTEGER NOT NULL,
        name            TEXT NOT NULL,
        community_rate  TEXT NOT NULL,
        grid_rate       TEXT NOT NULL,
        injection_rate  TEXT NOT NULL,
        monthly_fee     TEXT NOT NULL,
        vat_rate        TEXT NOT NULL,
        valid_from      TEXT NOT NULL,
        valid_to        TEXT,
        is_default      INTEGER NOT NULL DEFAULT 0,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL,
        FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tariffs_org ON tariff_plans(organization_id, valid_from)",
    """CREATE UNIQUE INDEX IF NOT EXISTS idx_tariffs_one_default
       ON tariff_plans(organization_id) WHERE is_default = 1""",

    # ── Invoices ────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS invoice_counters (
        scope           TEXT PRIMARY KEY,
        last_sequence   INTEGER NOT NULL,
        updated_at      TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoices (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        organization_id INTEGER NOT NULL,
        member_id       INTEGER NOT NULL,
        year            INTEGER NOT NULL,
        month           INTEGER NOT NULL,
        period_start    TEXT NOT NULL,
        period_end      TEXT NOT NULL,
        sequence        INTEGER NOT NULL,
        invoice_number  TEXT NOT NULL,
        status          TEXT NOT NULL DEFAULT 'draft'
                        CHECK (status IN ('draft', 'sent', 'paid', 'overdue', 'cancelled')),
        due_date        TEXT NOT NULL,
        subtotal        TEXT NOT NULL,
        vat_rate        TEXT NOT NULL,
        vat_amount      TEXT NOT NULL,
        total           TEXT NOT NULL,
        currency        TEXT NOT NULL,
        locale          TEXT NOT NULL,
        tariff_plan_id  INTEGER,
        created_at      TEXT NOT NULL,
        sent_at         TEXT,
        paid_at         TEXT,
        updated_at      TEXT NOT NULL,
        FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE,
        FOREIGN KEY (member_id) REFERENCES members(id),
        FOREIGN KEY (tariff_plan_id) REFERENCES tariff_plans(id) ON DELETE SET NULL
    )
    """,
    """CREATE UNIQUE INDEX IF NOT EXISTS idx_invoices_member_period
       ON invoices(organization_id, member_id, year, month)""",
    """CREATE UNIQUE INDEX IF NOT EXISTS idx_invoices_number
       ON invoices(organization_id, invoice_number)""",
    "CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(status, due_date)",
    """
    CREATE TABLE IF NOT EXISTS invoice_lines (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_id      INTEGER NOT NULL,
        description     TEXT NOT NULL,
        quantity        TEXT NOT NULL,
        unit            TEXT NOT NULL,
        unit_price      TEXT NOT NULL,
        line_total      TEXT NOT NULL,
        kind            TEXT NOT NULL
                        CHECK (kind IN ('consumption', 'production_credit', 'fee', 'adjustment')),
        sort_order      INTEGER NOT NULL,
        FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_invoice_lines_invoice ON invoice_lines(invoice_id, sort_order)",

    # ── Platform Billing ────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS platform_invoices (
        id                  INTEGER PRIMARY KEY AUTOINCREMENT,
        organization_id     INTEGER NOT NULL,
        year                INTEGER NOT NULL,
        month               INTEGER NOT NULL,
        sequence            INTEGER NOT NULL,
        invoice_number      TEXT NOT NULL,
        total_kwh           TEXT NOT NULL,
        rate_per_kwh        TEXT NOT NULL,
        calculated_amount   TEXT NOT NULL,
        minimum_amount      TEXT NOT NULL,
        final_amount        TEXT NOT NULL,
        vat_rate            TEXT NOT NULL,
        vat_amount          TEXT NOT NULL,
        total               TEXT NOT NULL,
        currency            TEXT NOT NULL,
        status              TEXT NOT NULL DEFAULT 'draft'
                            CHECK (status IN ('draft', 'sent', 'paid', 'overdue', 'cancelled')),
        due_date            TEXT NOT NULL,
        created_at          TEXT NOT NULL,
        sent_at             TEXT,
        paid_at             TEXT,
        updated_at          TEXT NOT NULL,
        FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE
    )
    """,
    """CREATE UNIQUE INDEX IF NOT EXISTS idx_platform_invoices_period
       ON platform_invoices(organization_id, year, month)""",
    """CREATE UNIQUE INDEX IF NOT EXISTS idx_platform_invoices_number
       ON platform_invoices(invoice_number)""",

    # ── Delivery ────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS delivery_attempts (
        id                  INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_kind        TEXT NOT NULL CHECK (invoice_kind IN ('member', 'platform')),
        invoice_id          INTEGER NOT NULL,
        organization_id     INTEGER NOT NULL,
        recipient           TEXT,
        locale              TEXT NOT NULL,
        status              TEXT NOT NULL DEFAULT 'pending'
                            CHECK (status IN ('pending', 'delivered', 'failed')),
        error               TEXT,
        document_reference  TEXT,
        attempts            INTEGER NOT NULL DEFAULT 0,
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_delivery_status ON delivery_attempts(status)",
    "CREATE INDEX IF NOT EXISTS idx_delivery_invoice ON delivery_attempts(invoice_kind, invoice_id)",

    # ── Schema Version ──────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id      INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL
    )
    """,
]
