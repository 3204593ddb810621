"""DDL for the identity schema.

Table and column names follow the identity store layout the web
application has always used, in snake_case.
"""

USERS_TABLE = "asp_net_users"
ROLES_TABLE = "asp_net_roles"
USER_ROLES_TABLE = "asp_net_user_roles"
USER_CLAIMS_TABLE = "asp_net_user_claims"
USER_LOGINS_TABLE = "asp_net_user_logins"

USER_COLUMNS = (
    "id",
    "user_name",
    "email",
    "email_confirmed",
    "password_hash",
    "security_stamp",
    "phone_number",
    "phone_number_confirmed",
    "two_factor_enabled",
    "lockout_end_date_utc",
    "lockout_enabled",
    "access_failed_count",
)

CREATE_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS {USERS_TABLE} (
        id VARCHAR(128) PRIMARY KEY,
        user_name VARCHAR(256) NOT NULL,
        email VARCHAR(256),
        email_confirmed BOOLEAN NOT NULL DEFAULT FALSE,
        password_hash TEXT,
        security_stamp TEXT,
        phone_number TEXT,
        phone_number_confirmed BOOLEAN NOT NULL DEFAULT FALSE,
        two_factor_enabled BOOLEAN NOT NULL DEFAULT FALSE,
        lockout_end_date_utc TIMESTAMP,
        lockout_enabled BOOLEAN NOT NULL DEFAULT FALSE,
        access_failed_count INTEGER NOT NULL DEFAULT 0
    )
    """,
    f"CREATE UNIQUE INDEX IF NOT EXISTS user_name_index ON {USERS_TABLE} (LOWER(user_name))",
    f"""
    CREATE TABLE IF NOT EXISTS {ROLES_TABLE} (
        id VARCHAR(128) PRIMARY KEY,
        name VARCHAR(256) NOT NULL UNIQUE
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {USER_ROLES_TABLE} (
        user_id VARCHAR(128) NOT NULL REFERENCES {USERS_TABLE} (id) ON DELETE CASCADE,
        role_id VARCHAR(128) NOT NULL REFERENCES {ROLES_TABLE} (id) ON DELETE CASCADE,
        PRIMARY KEY (user_id, role_id)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {USER_CLAIMS_TABLE} (
        id SERIAL PRIMARY KEY,
        user_id VARCHAR(128) NOT NULL REFERENCES {USERS_TABLE} (id) ON DELETE CASCADE,
        claim_type TEXT NOT NULL,
        claim_value TEXT
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {USER_LOGINS_TABLE} (
        login_provider VARCHAR(128) NOT NULL,
        provider_key VARCHAR(128) NOT NULL,
        user_id VARCHAR(128) NOT NULL REFERENCES {USERS_TABLE} (id) ON DELETE CASCADE,
        PRIMARY KEY (login_provider, provider_key, user_id)
    )
    """,
)

TABLE_EXISTS_QUERY = """
    SELECT EXISTS (
        SELECT 1 FROM information_schema.tables
        WHERE table_schema = current_schema() AND table_name = $1
    )
"""

COLUMN_EXISTS_QUERY = """
    SELECT EXISTS (
        SELECT 1 FROM information_schema.columns
        WHERE table_schema = current_schema() AND table_name = $1 AND column_name = $2
    )
"""
