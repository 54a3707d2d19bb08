"""
Database schema definitions for Agent-SAFE Grid.

Three tables: the tenant policy documents, the metering counters and the
append-only audit log. Audit order is the per-tenant ``sequence`` column,
never the timestamp.
"""

# Current schema version - increment when making schema changes
SCHEMA_VERSION = 1

SCHEMA_VERSION_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now')),
    description TEXT
);
"""

# One policy document per tenant, stored as camelCase JSON
TENANT_POLICIES_SQL = """
CREATE TABLE IF NOT EXISTS tenant_policies (
    tenant_id TEXT PRIMARY KEY,
    content TEXT NOT NULL,  -- JSON PolicyConfig document
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

METERING_STATS_SQL = """
CREATE TABLE IF NOT EXISTS metering_stats (
    tenant_id TEXT PRIMARY KEY,
    total_requests INTEGER NOT NULL DEFAULT 0,
    total_tokens INTEGER NOT NULL DEFAULT 0,
    total_cost REAL NOT NULL DEFAULT 0,
    budget_remaining REAL NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

AUDIT_LOG_SQL = """
CREATE TABLE IF NOT EXISTS audit_log (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    sequence INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,  -- milliseconds since the epoch
    action TEXT NOT NULL,
    user TEXT NOT NULL,
    details TEXT NOT NULL,
    status TEXT NOT NULL,  -- success, violation, error
    hash TEXT NOT NULL,
    rule_id TEXT,
    previous_hash TEXT,
    UNIQUE (tenant_id, sequence)
);

CREATE INDEX IF NOT EXISTS idx_audit_log_action ON audit_log(tenant_id, action);

CREATE TRIGGER IF NOT EXISTS audit_log_no_update
BEFORE UPDATE ON audit_log
BEGIN
    SELECT RAISE(ABORT, 'audit_log is append-only');
END;

CREATE TRIGGER IF NOT EXISTS audit_log_no_delete
BEFORE DELETE ON audit_log
BEGIN
    SELECT RAISE(ABORT, 'audit_log is append-only');
END;
"""

SCHEMA_SQL = f"""
-- Agent-SAFE Grid Database Schema v{SCHEMA_VERSION}

{SCHEMA_VERSION_SQL}

{TENANT_POLICIES_SQL}

{METERING_STATS_SQL}

{AUDIT_LOG_SQL}

INSERT OR IGNORE INTO schema_version (version, description)
VALUES ({SCHEMA_VERSION}, 'Initial schema');
"""

TABLES = [
    "schema_version",
    "tenant_policies",
    "metering_stats",
    "audit_log",
]
