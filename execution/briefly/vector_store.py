"""
Vector Store with PostgreSQL + pgvector

Persistence layer for Briefly CoPilot. Documents, chunk embeddings, contract
reviews, drafts, conversations and rate-limit counters all live in Postgres;
similarity search is delegated to SQL functions built on pgvector's cosine
distance operator (``1 - (embedding <=> query)``).

Per-organization isolation is enforced by Row-Level Security policies that
read the requesting user from the ``app.current_user`` session setting.
"""

import os
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from contextlib import contextmanager
from contextvars import ContextVar

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

VECTORIZATION_STATUSES = ("pending", "processing", "completed", "failed")
REVIEW_STATUSES = ("processing", "completed", "failed")
FINDING_STATUSES = ("pending", "accepted", "rejected")

# Requesting user for Row-Level Security. Each request task (and every
# threadpool call it makes) sees its own value.
_request_user: ContextVar[Optional[str]] = ContextVar("briefly_request_user", default=None)


def set_request_user(user_id: Optional[str]) -> None:
    """Bind the user whose rows the current request may see."""
    _request_user.set(str(user_id) if user_id else None)


def current_request_user() -> Optional[str]:
    return _request_user.get()


@dataclass
class StoreConfig:
    """Configuration for the Postgres store."""
    connection_string: Optional[str] = None
    embedding_dimensions: int = 1536
    # Connection pooling settings
    pool_min_connections: int = 1
    pool_max_connections: int = 10
    use_pooling: bool = True


def _serialize_value(value):
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def _serialize_row(row) -> Optional[dict]:
    """Convert a RealDictRow into a JSON-friendly dict."""
    if row is None:
        return None
    return {key: _serialize_value(value) for key, value in dict(row).items()}


def _vector_literal(embedding: list[float]) -> str:
    return "[" + ",".join(str(float(x)) for x in embedding) + "]"


class VectorStore:
    """
    PostgreSQL store with pgvector.

    Features:
    - Cosine similarity search over document chunks and benchmark clauses
    - Organization-scoped Row-Level Security
    - Batch insert of chunk embeddings
    - Draft version history and contract review bookkeeping
    """

    def __init__(self, config: Optional[StoreConfig] = None):
        """
        Initialize the store.

        Args:
            config: Optional configuration. Uses env vars if not provided.
        """
        self.config = config or StoreConfig()
        self._conn = None
        self._pool = None
        self._connection_string = (
            self.config.connection_string or
            os.getenv("DATABASE_URL") or
            os.getenv("POSTGRES_URL") or
            "postgresql://localhost:5432/briefly"
        )

    def connect(self) -> None:
        """Establish database connection (with optional pooling)."""
        from psycopg2.extras import RealDictCursor

        try:
            if self.config.use_pooling:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self.config.pool_min_connections,
                    maxconn=self.config.pool_max_connections,
                    dsn=self._connection_string,
                    cursor_factory=RealDictCursor,
                )
                conn = self._pool.getconn()
                try:
                    with conn.cursor() as cur:
                        cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
                    conn.commit()
                finally:
                    self._pool.putconn(conn)
                logger.info(
                    f"Connection pool initialized (min={self.config.pool_min_connections}, "
                    f"max={self.config.pool_max_connections})"
                )
            else:
                self._conn = psycopg2.connect(
                    self._connection_string,
                    cursor_factory=RealDictCursor
                )
                self._conn.autocommit = False
                with self._conn.cursor() as cur:
                    cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
                    self._conn.commit()
                logger.info("Connected to PostgreSQL with pgvector (single connection)")
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            raise

    def _get_connection(self):
        """Get a connection from the pool (or the single connection).

        The requesting user is written to ``app.current_user`` on every
        checkout, so a pooled connection never keeps a previous request's
        user.
        """
        if self._pool:
            conn = self._pool.getconn()
        else:
            if self._conn is None or self._conn.closed:
                logger.warning("Connection closed, reconnecting...")
                self.connect()
            conn = self._conn

        with conn.cursor() as cur:
            cur.execute(
                "SELECT set_config('app.current_user', %s, false)",
                (current_request_user() or "",),
            )
        return conn

    def _release_connection(self, conn):
        """Release a connection back to the pool (if pooling is enabled)."""
        if self._pool and conn:
            self._pool.putconn(conn)

    def _ensure_connection(self):
        """Ensure we have a connection (pool or single) and return it."""
        if not self._conn and not self._pool:
            self.connect()

        try:
            return self._get_connection()
        except (psycopg2.OperationalError, psycopg2.InterfaceError):
            logger.warning("Database error in _ensure_connection, retrying after reconnect...")
            self.connect()
            return self._get_connection()

    @contextmanager
    def get_connection(self):
        """
        Context manager for getting a database connection.

        Usage:
            with store.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        conn = self._ensure_connection()
        try:
            yield conn
        finally:
            self._release_connection(conn)

    def _safe_rollback(self, conn) -> None:
        """Rollback a connection, ignoring errors if the connection is dead."""
        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            pass

    def _execute_with_retry(self, operation, label="db_operation"):
        """Execute a DB operation with one retry on stale connection.

        Args:
            operation: Callable(conn) that performs the DB work and returns a result.
            label: Human-readable name for logging.

        Returns:
            Whatever ``operation`` returns.
        """
        for attempt in range(2):
            conn = self._ensure_connection()
            try:
                result = operation(conn)
                self._release_connection(conn)
                return result
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
                self._safe_rollback(conn)
                try:
                    self._release_connection(conn)
                except psycopg2.Error:
                    pass
                if attempt == 0:
                    logger.warning(f"{label}: stale conn, reconnecting: {e}")
                    self.connect()
                    continue
                raise
            except Exception:
                self._safe_rollback(conn)
                self._release_connection(conn)
                raise

    def _fetch_one(self, sql: str, params: tuple, label: str, commit: bool = False) -> Optional[dict]:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
            if commit:
                conn.commit()
            return _serialize_row(row)

        return self._execute_with_retry(_op, label)

    def _fetch_all(self, sql: str, params: tuple, label: str) -> list[dict]:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            return [_serialize_row(r) for r in rows]

        return self._execute_with_retry(_op, label)

    def _execute(self, sql: str, params: tuple, label: str) -> int:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                affected = cur.rowcount
            conn.commit()
            return affected

        return self._execute_with_retry(_op, label)

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            row = self._fetch_one("SELECT 1 AS ok", (), "ping")
            return bool(row and row.get("ok") == 1)
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def close(self) -> None:
        """Close database connection(s)."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")
        if self._conn:
            self._conn.close()
            self._conn = None

    # =========================================================================
    # Row-Level Security
    # =========================================================================

    def set_user_context(self, user_id: Optional[str]) -> None:
        """
        Set the requesting user for Row-Level Security.

        The value is scoped to the calling context (request task or thread)
        and applied to every connection it checks out, so policies calling
        ``current_app_user()`` only see that user's organization.
        """
        set_request_user(user_id)
        logger.debug(f"User context set to {user_id}")

    def clear_user_context(self) -> None:
        """Clear the user context (for admin and background operations)."""
        set_request_user(None)

    def enable_rls(self) -> None:
        """
        Enable organization-scoped Row-Level Security on tenant tables.

        WARNING: Only call this once during initial setup.
        """
        org_tables = ("documents", "contract_reviews", "document_drafts", "usage_logs")
        statements = [
            """
            CREATE OR REPLACE FUNCTION current_app_user() RETURNS uuid
            LANGUAGE sql STABLE AS $$
                SELECT NULLIF(current_setting('app.current_user', true), '')::uuid
            $$;
            """,
            """
            CREATE OR REPLACE FUNCTION user_organization_ids() RETURNS SETOF uuid
            LANGUAGE sql STABLE SECURITY DEFINER AS $$
                SELECT organization_id FROM user_roles WHERE user_id = current_app_user()
            $$;
            """,
        ]
        for table in org_tables:
            statements.append(f"""
            ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;
            DROP POLICY IF EXISTS org_isolation_{table} ON {table};
            CREATE POLICY org_isolation_{table} ON {table}
                FOR ALL
                USING (organization_id IN (SELECT user_organization_ids()));
            """)

        statements.append("""
        ALTER TABLE document_chunks ENABLE ROW LEVEL SECURITY;
        DROP POLICY IF EXISTS org_isolation_document_chunks ON document_chunks;
        CREATE POLICY org_isolation_document_chunks ON document_chunks
            FOR ALL
            USING (document_id IN (
                SELECT id FROM documents
                WHERE organization_id IN (SELECT user_organization_ids())
            ));

        ALTER TABLE clause_findings ENABLE ROW LEVEL SECURITY;
        DROP POLICY IF EXISTS org_isolation_clause_findings ON clause_findings;
        CREATE POLICY org_isolation_clause_findings ON clause_findings
            FOR ALL
            USING (review_id IN (
                SELECT id FROM contract_reviews
                WHERE organization_id IN (SELECT user_organization_ids())
            ));

        ALTER TABLE conversations ENABLE ROW LEVEL SECURITY;
        DROP POLICY IF EXISTS owner_isolation_conversations ON conversations;
        CREATE POLICY owner_isolation_conversations ON conversations
            FOR ALL
            USING (user_id = current_app_user());

        ALTER TABLE messages ENABLE ROW LEVEL SECURITY;
        DROP POLICY IF EXISTS owner_isolation_messages ON messages;
        CREATE POLICY owner_isolation_messages ON messages
            FOR ALL
            USING (conversation_id IN (
                SELECT id FROM conversations WHERE user_id = current_app_user()
            ));
        """)

        def _op(conn):
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)
            conn.commit()
            logger.info("Row-Level Security enabled on all tenant tables")

        self._execute_with_retry(_op, "enable_rls")

    # =========================================================================
    # Schema
    # =========================================================================

    def initialize_schema(self) -> None:
        """Create tables, indexes and SQL functions if they don't exist."""
        dims = self.config.embedding_dimensions
        schema_sql = f"""
        DO $$
        BEGIN
            IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'app_role') THEN
                CREATE TYPE app_role AS ENUM ('admin', 'member', 'viewer');
            END IF;
        END
        $$;

        CREATE TABLE IF NOT EXISTS organizations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT NOT NULL,
            slug TEXT UNIQUE,
            logo_url TEXT,
            settings JSONB DEFAULT '{{}}',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS user_roles (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL,
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            role app_role NOT NULL DEFAULT 'member',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE (user_id, organization_id)
        );

        CREATE TABLE IF NOT EXISTS documents (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            user_id UUID NOT NULL,
            filename TEXT NOT NULL,
            content_text TEXT,
            file_type TEXT,
            file_size BIGINT,
            file_path TEXT,
            metadata JSONB DEFAULT '{{}}',
            is_vectorized BOOLEAN DEFAULT FALSE,
            vectorization_status TEXT DEFAULT 'pending',
            chunk_count INT DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS document_chunks (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            document_id UUID NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
            chunk_index INT NOT NULL,
            chunk_text TEXT NOT NULL,
            embedding VECTOR({dims}),
            metadata JSONB DEFAULT '{{}}',
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS benchmark_clauses (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            clause_type TEXT NOT NULL,
            clause_text TEXT NOT NULL,
            source_document TEXT,
            is_favorable BOOLEAN,
            industry TEXT,
            metadata JSONB DEFAULT '{{}}',
            embedding VECTOR({dims}),
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS contract_reviews (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            document_id UUID REFERENCES documents(id) ON DELETE CASCADE,
            user_id UUID NOT NULL,
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            status TEXT NOT NULL DEFAULT 'processing',
            analysis_results JSONB DEFAULT '{{}}',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS clause_findings (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            review_id UUID NOT NULL REFERENCES contract_reviews(id) ON DELETE CASCADE,
            clause_title TEXT,
            clause_text TEXT,
            risk_level TEXT,
            issue_description TEXT,
            recommendation TEXT,
            original_text TEXT,
            suggested_text TEXT,
            benchmark_data JSONB DEFAULT '{{}}',
            status TEXT DEFAULT 'pending',
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS conversations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL,
            organization_id UUID REFERENCES organizations(id) ON DELETE SET NULL,
            title TEXT NOT NULL DEFAULT 'New Chat',
            conversation_type TEXT DEFAULT 'chat',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS document_drafts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL,
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            conversation_id UUID REFERENCES conversations(id) ON DELETE SET NULL,
            title TEXT NOT NULL,
            document_type TEXT,
            content JSONB DEFAULT '{{}}',
            current_version INT DEFAULT 1,
            status TEXT DEFAULT 'draft',
            metadata JSONB DEFAULT '{{}}',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS draft_versions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            draft_id UUID NOT NULL REFERENCES document_drafts(id) ON DELETE CASCADE,
            version_number INT NOT NULL,
            content JSONB NOT NULL,
            changes_summary TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE (draft_id, version_number)
        );

        CREATE TABLE IF NOT EXISTS rate_limits (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL,
            action_type TEXT NOT NULL,
            action_count INT NOT NULL DEFAULT 1,
            window_start TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS usage_logs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL,
            organization_id UUID,
            action_type TEXT NOT NULL,
            resource_id UUID,
            metadata JSONB DEFAULT '{{}}',
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_documents_org ON documents(organization_id);
        CREATE INDEX IF NOT EXISTS idx_documents_org_filename ON documents(organization_id, filename);
        CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id);
        CREATE INDEX IF NOT EXISTS idx_findings_review ON clause_findings(review_id);
        CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);
        CREATE INDEX IF NOT EXISTS idx_rate_limits_user_action
            ON rate_limits(user_id, action_type, window_start);
        CREATE INDEX IF NOT EXISTS idx_usage_logs_org_action
            ON usage_logs(organization_id, action_type, created_at);

        CREATE OR REPLACE FUNCTION match_document_chunks(
            query_embedding VECTOR({dims}),
            match_threshold FLOAT,
            match_count INT,
            filter_document_ids UUID[] DEFAULT NULL
        )
        RETURNS TABLE (
            id UUID,
            document_id UUID,
            chunk_index INT,
            chunk_text TEXT,
            similarity FLOAT
        )
        LANGUAGE sql STABLE AS $$
            SELECT c.id, c.document_id, c.chunk_index, c.chunk_text,
                   1 - (c.embedding <=> query_embedding) AS similarity
            FROM document_chunks c
            WHERE 1 - (c.embedding <=> query_embedding) > match_threshold
              AND (filter_document_ids IS NULL OR c.document_id = ANY(filter_document_ids))
            ORDER BY c.embedding <=> query_embedding
            LIMIT match_count
        $$;

        CREATE OR REPLACE FUNCTION match_benchmark_clauses(
            query_embedding VECTOR({dims}),
            match_threshold FLOAT,
            match_count INT,
            filter_clause_type TEXT DEFAULT NULL
        )
        RETURNS TABLE (
            id UUID,
            clause_type TEXT,
            clause_text TEXT,
            source_document TEXT,
            is_favorable BOOLEAN,
            industry TEXT,
            similarity FLOAT
        )
        LANGUAGE sql STABLE AS $$
            SELECT b.id, b.clause_type, b.clause_text, b.source_document,
                   b.is_favorable, b.industry,
                   1 - (b.embedding <=> query_embedding) AS similarity
            FROM benchmark_clauses b
            WHERE 1 - (b.embedding <=> query_embedding) > match_threshold
              AND (filter_clause_type IS NULL OR b.clause_type = filter_clause_type)
            ORDER BY b.embedding <=> query_embedding
            LIMIT match_count
        $$;

        CREATE OR REPLACE FUNCTION check_rate_limit(
            _user_id UUID,
            _action_type TEXT,
            _limit INT,
            _window_minutes INT
        )
        RETURNS BOOLEAN
        LANGUAGE plpgsql AS $$
        DECLARE
            _count INT;
        BEGIN
            SELECT COALESCE(SUM(action_count), 0) INTO _count
            FROM rate_limits
            WHERE user_id = _user_id
              AND action_type = _action_type
              AND window_start > NOW() - make_interval(mins => _window_minutes);

            IF _count >= _limit THEN
                RETURN FALSE;
            END IF;

            INSERT INTO rate_limits (user_id, action_type, action_count, window_start)
            VALUES (_user_id, _action_type, 1, NOW());
            RETURN TRUE;
        END
        $$;

        CREATE OR REPLACE FUNCTION check_org_rate_limit(
            _organization_id UUID,
            _action_type TEXT,
            _limit INT,
            _window_minutes INT
        )
        RETURNS BOOLEAN
        LANGUAGE plpgsql AS $$
        DECLARE
            _count INT;
        BEGIN
            SELECT COUNT(*) INTO _count
            FROM usage_logs
            WHERE organization_id = _organization_id
              AND action_type = _action_type
              AND created_at > NOW() - make_interval(mins => _window_minutes);
            RETURN _count < _limit;
        END
        $$;
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(schema_sql)
            conn.commit()
            logger.info("Schema initialized successfully")

        try:
            self._execute_with_retry(_op, "initialize_schema")
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise

    def create_vector_index(self, m: int = 16, ef_construction: int = 64) -> None:
        """Create HNSW indexes for cosine search on chunks and benchmark clauses."""
        sql = f"""
        CREATE INDEX IF NOT EXISTS idx_chunks_embedding_hnsw
            ON document_chunks USING hnsw (embedding vector_cosine_ops)
            WITH (m = {int(m)}, ef_construction = {int(ef_construction)});
        CREATE INDEX IF NOT EXISTS idx_benchmark_embedding_hnsw
            ON benchmark_clauses USING hnsw (embedding vector_cosine_ops)
            WITH (m = {int(m)}, ef_construction = {int(ef_construction)});
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql)
            conn.commit()
            logger.info(f"HNSW indexes created (m={m}, ef_construction={ef_construction})")

        self._execute_with_retry(_op, "create_vector_index")

    # =========================================================================
    # Organizations
    # =========================================================================

    def get_user_membership(self, user_id: str) -> Optional[dict]:
        """
        Return the user's organization assignment.

        Returns:
            Dict with organization_id, role, organization_name and settings,
            or None when the user is not assigned to any organization
        """
        sql = """
        SELECT ur.organization_id, ur.role::text AS role,
               o.name AS organization_name, o.settings
        FROM user_roles ur
        JOIN organizations o ON o.id = ur.organization_id
        WHERE ur.user_id = %s::uuid
        ORDER BY ur.created_at ASC
        LIMIT 1
        """
        return self._fetch_one(sql, (user_id,), "get_user_membership")

    # =========================================================================
    # Documents
    # =========================================================================

    _DOCUMENT_COLUMNS = (
        "id, organization_id, user_id, filename, file_type, file_size, file_path, "
        "metadata, is_vectorized, vectorization_status, chunk_count, created_at, updated_at"
    )

    def insert_document(
        self,
        organization_id: Optional[str],
        user_id: str,
        filename: str,
        content_text: str,
        file_type: Optional[str] = None,
        file_size: Optional[int] = None,
        file_path: Optional[str] = None,
        metadata: Optional[dict] = None,
        vectorization_status: str = "pending",
    ) -> dict:
        """Insert a document record and return it (without its text)."""
        sql = f"""
        INSERT INTO documents
            (organization_id, user_id, filename, content_text, file_type, file_size,
             file_path, metadata, is_vectorized, vectorization_status)
        VALUES (%s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s, FALSE, %s)
        RETURNING {self._DOCUMENT_COLUMNS}
        """
        return self._fetch_one(
            sql,
            (
                organization_id, user_id, filename, content_text, file_type,
                file_size, file_path, json.dumps(metadata or {}), vectorization_status,
            ),
            "insert_document",
            commit=True,
        )

    def insert_documents(self, rows: list[dict]) -> int:
        """
        Insert several documents in one transaction.

        Args:
            rows: Dicts with organization_id, user_id, filename, content_text,
                file_type, file_size, metadata and optional vectorization_status

        Returns:
            Number of rows inserted
        """
        if not rows:
            return 0

        from psycopg2.extras import execute_values

        sql = """
        INSERT INTO documents
            (organization_id, user_id, filename, content_text, file_type, file_size,
             metadata, is_vectorized, vectorization_status)
        VALUES %s
        """
        values = [
            (
                row.get("organization_id"),
                row["user_id"],
                row["filename"],
                row.get("content_text", ""),
                row.get("file_type"),
                row.get("file_size"),
                json.dumps(row.get("metadata") or {}),
                False,
                row.get("vectorization_status", "pending"),
            )
            for row in rows
        ]

        def _op(conn):
            with conn.cursor() as cur:
                execute_values(
                    cur,
                    sql,
                    values,
                    template="(%s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s, %s)",
                    page_size=100,
                )
            conn.commit()
            logger.info(f"Batch inserted {len(values)} documents")
            return len(values)

        return self._execute_with_retry(_op, "insert_documents")

    def get_document(self, document_id: str) -> Optional[dict]:
        """Fetch a document including its extracted text."""
        sql = f"""
        SELECT {self._DOCUMENT_COLUMNS}, content_text
        FROM documents WHERE id = %s::uuid
        """
        return self._fetch_one(sql, (document_id,), "get_document")

    def get_documents(self, document_ids: list[str], organization_id: Optional[str] = None) -> list[dict]:
        """Fetch several documents (with text), preserving the requested order."""
        if not document_ids:
            return []

        sql = f"""
        SELECT {self._DOCUMENT_COLUMNS}, content_text
        FROM documents
        WHERE id = ANY(%s::uuid[])
          AND (%s::uuid IS NULL OR organization_id = %s::uuid)
        """
        rows = self._fetch_all(sql, (list(document_ids), organization_id, organization_id), "get_documents")
        by_id = {row["id"]: row for row in rows}
        return [by_id[doc_id] for doc_id in document_ids if doc_id in by_id]

    def find_document_by_filename(self, organization_id: str, filename: str) -> Optional[dict]:
        """Return the first document with this filename in the organization."""
        sql = """
        SELECT id, filename FROM documents
        WHERE organization_id = %s::uuid AND filename = %s
        LIMIT 1
        """
        return self._fetch_one(sql, (organization_id, filename), "find_document_by_filename")

    def list_documents(self, organization_id: str, file_type: Optional[str] = None) -> list[dict]:
        """List an organization's documents, newest first."""
        sql = f"""
        SELECT {self._DOCUMENT_COLUMNS}
        FROM documents
        WHERE organization_id = %s::uuid
          AND (%s::text IS NULL OR file_type = %s::text)
        ORDER BY created_at DESC
        """
        return self._fetch_all(sql, (organization_id, file_type, file_type), "list_documents")

    def list_document_ids_by_status(
        self, organization_id: str, statuses: tuple = ("pending", "failed"), limit: int = 100
    ) -> list[str]:
        """Return ids of documents whose vectorization status is in ``statuses``."""
        sql = """
        SELECT id FROM documents
        WHERE organization_id = %s::uuid
          AND COALESCE(vectorization_status, 'pending') = ANY(%s)
        ORDER BY created_at ASC
        LIMIT %s
        """
        rows = self._fetch_all(sql, (organization_id, list(statuses), limit), "list_document_ids_by_status")
        return [row["id"] for row in rows]

    def delete_document(self, document_id: str, organization_id: Optional[str] = None) -> bool:
        """Delete a document (chunks cascade)."""
        sql = """
        DELETE FROM documents
        WHERE id = %s::uuid AND (%s::uuid IS NULL OR organization_id = %s::uuid)
        """
        deleted = self._execute(sql, (document_id, organization_id, organization_id), "delete_document")
        if deleted:
            logger.info(f"Deleted document {document_id}")
        return deleted > 0

    def set_vectorization_status(self, document_id: str, status: str) -> None:
        """Update a document's vectorization status."""
        if status not in VECTORIZATION_STATUSES:
            raise ValueError(f"Unknown vectorization status: {status}")
        sql = """
        UPDATE documents SET vectorization_status = %s, updated_at = NOW()
        WHERE id = %s::uuid
        """
        self._execute(sql, (status, document_id), "set_vectorization_status")

    def mark_vectorized(self, document_id: str, chunk_count: int) -> None:
        """Record a successful vectorization."""
        sql = """
        UPDATE documents
        SET is_vectorized = TRUE, vectorization_status = 'completed',
            chunk_count = %s, updated_at = NOW()
        WHERE id = %s::uuid
        """
        self._execute(sql, (chunk_count, document_id), "mark_vectorized")

    def count_vectorization_status(self, organization_id: str, file_type: str = "cuad_contract") -> list[dict]:
        """
        Count documents per vectorization status.

        Returns:
            Rows of {status, count}; status may be None
        """
        sql = """
        SELECT vectorization_status AS status, COUNT(*) AS count
        FROM documents
        WHERE organization_id = %s::uuid AND file_type = %s
        GROUP BY vectorization_status
        """
        return self._fetch_all(sql, (organization_id, file_type), "count_vectorization_status")

    # =========================================================================
    # Chunks
    # =========================================================================

    def delete_chunks(self, document_id: str) -> int:
        """Delete every chunk of a document."""
        return self._execute(
            "DELETE FROM document_chunks WHERE document_id = %s::uuid",
            (document_id,),
            "delete_chunks",
        )

    def insert_chunks(self, document_id: str, chunks: list[dict], embeddings: list[list[float]]) -> None:
        """
        Batch insert chunks with embeddings using execute_values.

        Args:
            document_id: Owning document
            chunks: Chunk dicts (from TextChunk.to_dict())
            embeddings: Corresponding embedding vectors
        """
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"Mismatch: {len(chunks)} chunks, {len(embeddings)} embeddings"
            )
        if not chunks:
            return

        from psycopg2.extras import execute_values

        sql = """
        INSERT INTO document_chunks (document_id, chunk_index, chunk_text, embedding, metadata)
        VALUES %s
        """
        values = [
            (
                document_id,
                chunk["chunk_index"],
                chunk["chunk_text"],
                _vector_literal(embedding),
                json.dumps(chunk.get("metadata", {})),
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]

        def _op(conn):
            with conn.cursor() as cur:
                execute_values(
                    cur,
                    sql,
                    values,
                    template="(%s::uuid, %s, %s, %s::vector, %s)",
                    page_size=100,
                )
            conn.commit()
            logger.info(f"Batch inserted {len(values)} chunks for document {document_id}")

        self._execute_with_retry(_op, "insert_chunks")

    def match_document_chunks(
        self,
        query_embedding: list[float],
        match_threshold: float = 0.5,
        match_count: int = 10,
        document_ids: Optional[list[str]] = None,
    ) -> list[dict]:
        """
        Cosine-similarity search over chunks via ``match_document_chunks``.

        Returns:
            Rows of {id, document_id, chunk_index, chunk_text, similarity},
            most similar first
        """
        sql = """
        SELECT * FROM match_document_chunks(%s::vector, %s, %s, %s::uuid[])
        """
        return self._fetch_all(
            sql,
            (_vector_literal(query_embedding), match_threshold, match_count, document_ids or None),
            "match_document_chunks",
        )

    # =========================================================================
    # Benchmark clauses
    # =========================================================================

    def insert_benchmark_clause(
        self,
        clause_type: str,
        clause_text: str,
        embedding: list[float],
        source_document: Optional[str] = None,
        is_favorable: Optional[bool] = None,
        industry: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        """Insert a reference clause and return its id."""
        sql = """
        INSERT INTO benchmark_clauses
            (clause_type, clause_text, source_document, is_favorable, industry, metadata, embedding)
        VALUES (%s, %s, %s, %s, %s, %s, %s::vector)
        RETURNING id
        """
        row = self._fetch_one(
            sql,
            (
                clause_type, clause_text, source_document, is_favorable, industry,
                json.dumps(metadata or {}), _vector_literal(embedding),
            ),
            "insert_benchmark_clause",
            commit=True,
        )
        return row["id"]

    def has_benchmark_clauses(self, source_document: str) -> bool:
        """True when reference clauses from this source are already stored."""
        sql = """
        SELECT 1 AS found FROM benchmark_clauses
        WHERE source_document = %s
        LIMIT 1
        """
        return self._fetch_one(sql, (source_document,), "has_benchmark_clauses") is not None

    def match_benchmark_clauses(
        self,
        query_embedding: list[float],
        match_threshold: float = 0.7,
        match_count: int = 5,
        clause_type: Optional[str] = None,
    ) -> list[dict]:
        """Cosine-similarity search over benchmark clauses."""
        sql = """
        SELECT * FROM match_benchmark_clauses(%s::vector, %s, %s, %s)
        """
        return self._fetch_all(
            sql,
            (_vector_literal(query_embedding), match_threshold, match_count, clause_type),
            "match_benchmark_clauses",
        )

    # =========================================================================
    # Contract reviews
    # =========================================================================

    def create_contract_review(self, document_id: str, user_id: str, organization_id: Optional[str]) -> dict:
        """Create a review row in ``processing`` state."""
        sql = """
        INSERT INTO contract_reviews (document_id, user_id, organization_id, status, analysis_results)
        VALUES (%s::uuid, %s::uuid, %s::uuid, 'processing', '{}'::jsonb)
        RETURNING id, document_id, user_id, organization_id, status, analysis_results,
                  created_at, updated_at
        """
        return self._fetch_one(
            sql, (document_id, user_id, organization_id), "create_contract_review", commit=True
        )

    def update_contract_review(
        self,
        review_id: str,
        status: Optional[str] = None,
        analysis_results: Optional[dict] = None,
    ) -> None:
        """Update a review's status and/or replace its analysis results."""
        if status is not None and status not in REVIEW_STATUSES:
            raise ValueError(f"Unknown review status: {status}")
        sql = """
        UPDATE contract_reviews
        SET status = COALESCE(%s, status),
            analysis_results = COALESCE(%s::jsonb, analysis_results),
            updated_at = NOW()
        WHERE id = %s::uuid
        """
        results_json = json.dumps(analysis_results) if analysis_results is not None else None
        self._execute(sql, (status, results_json, review_id), "update_contract_review")

    def get_contract_review(self, review_id: str) -> Optional[dict]:
        sql = """
        SELECT id, document_id, user_id, organization_id, status, analysis_results,
               created_at, updated_at
        FROM contract_reviews WHERE id = %s::uuid
        """
        return self._fetch_one(sql, (review_id,), "get_contract_review")

    def list_contract_reviews(self, organization_id: str, document_id: Optional[str] = None) -> list[dict]:
        """List an organization's reviews, newest first."""
        sql = """
        SELECT r.id, r.document_id, r.user_id, r.organization_id, r.status,
               r.analysis_results, r.created_at, r.updated_at, d.filename
        FROM contract_reviews r
        LEFT JOIN documents d ON d.id = r.document_id
        WHERE r.organization_id = %s::uuid
          AND (%s::uuid IS NULL OR r.document_id = %s::uuid)
        ORDER BY r.created_at DESC
        """
        return self._fetch_all(sql, (organization_id, document_id, document_id), "list_contract_reviews")

    _FINDING_COLUMNS = (
        "id, review_id, clause_title, clause_text, risk_level, issue_description, "
        "recommendation, original_text, suggested_text, benchmark_data, status, created_at"
    )

    def insert_clause_findings(self, review_id: str, findings: list[dict]) -> int:
        """Insert findings for a review with status 'pending' and empty benchmark data."""
        if not findings:
            return 0

        from psycopg2.extras import execute_values

        sql = """
        INSERT INTO clause_findings
            (review_id, clause_title, clause_text, risk_level, issue_description,
             recommendation, original_text, suggested_text, benchmark_data, status)
        VALUES %s
        """
        values = [
            (
                review_id,
                f.get("clause_title"),
                f.get("clause_text"),
                f.get("risk_level"),
                f.get("issue_description"),
                f.get("recommendation"),
                f.get("original_text"),
                f.get("suggested_text"),
                "{}",
                "pending",
            )
            for f in findings
        ]

        def _op(conn):
            with conn.cursor() as cur:
                execute_values(
                    cur,
                    sql,
                    values,
                    template="(%s::uuid, %s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s)",
                    page_size=200,
                )
            conn.commit()
            return len(values)

        return self._execute_with_retry(_op, "insert_clause_findings")

    def list_clause_findings(self, review_id: str) -> list[dict]:
        sql = f"""
        SELECT {self._FINDING_COLUMNS}
        FROM clause_findings WHERE review_id = %s::uuid
        ORDER BY CASE risk_level WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END, created_at
        """
        return self._fetch_all(sql, (review_id,), "list_clause_findings")

    def get_clause_finding(self, finding_id: str) -> Optional[dict]:
        """Fetch a finding together with its review's organization."""
        sql = """
        SELECT f.id, f.review_id, f.clause_title, f.clause_text, f.risk_level,
               f.issue_description, f.recommendation, f.original_text, f.suggested_text,
               f.benchmark_data, f.status, f.created_at, r.organization_id
        FROM clause_findings f
        JOIN contract_reviews r ON r.id = f.review_id
        WHERE f.id = %s::uuid
        """
        return self._fetch_one(sql, (finding_id,), "get_clause_finding")

    def update_finding_benchmark(self, finding_id: str, benchmark_data: dict) -> bool:
        sql = "UPDATE clause_findings SET benchmark_data = %s::jsonb WHERE id = %s::uuid"
        return self._execute(sql, (json.dumps(benchmark_data), finding_id), "update_finding_benchmark") > 0

    def update_finding_status(self, finding_id: str, status: str) -> bool:
        if status not in FINDING_STATUSES:
            raise ValueError(f"Unknown finding status: {status}")
        sql = "UPDATE clause_findings SET status = %s WHERE id = %s::uuid"
        return self._execute(sql, (status, finding_id), "update_finding_status") > 0

    # =========================================================================
    # Conversations & messages
    # =========================================================================

    def create_conversation(
        self,
        user_id: str,
        organization_id: Optional[str] = None,
        title: str = "New Chat",
        conversation_type: str = "chat",
    ) -> dict:
        """Create a new conversation for a user."""
        sql = """
        INSERT INTO conversations (user_id, organization_id, title, conversation_type)
        VALUES (%s::uuid, %s::uuid, %s, %s)
        RETURNING id, user_id, organization_id, title, conversation_type, created_at, updated_at
        """
        return self._fetch_one(
            sql, (user_id, organization_id, title, conversation_type), "create_conversation", commit=True
        )

    def get_conversation(self, conversation_id: str, user_id: str) -> Optional[dict]:
        sql = """
        SELECT id, user_id, organization_id, title, conversation_type, created_at, updated_at
        FROM conversations WHERE id = %s::uuid AND user_id = %s::uuid
        """
        return self._fetch_one(sql, (conversation_id, user_id), "get_conversation")

    def list_conversations(self, user_id: str, conversation_type: Optional[str] = None) -> list[dict]:
        """List a user's conversations, newest first."""
        sql = """
        SELECT id, user_id, organization_id, title, conversation_type, created_at, updated_at
        FROM conversations
        WHERE user_id = %s::uuid
          AND (%s::text IS NULL OR conversation_type = %s::text)
        ORDER BY updated_at DESC
        """
        return self._fetch_all(sql, (user_id, conversation_type, conversation_type), "list_conversations")

    def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """Delete a conversation and its messages (user-isolated)."""
        sql = "DELETE FROM conversations WHERE id = %s::uuid AND user_id = %s::uuid"
        return self._execute(sql, (conversation_id, user_id), "delete_conversation") > 0

    def add_message(self, conversation_id: str, role: str, content: str) -> dict:
        """Append a message and bump the conversation's updated_at."""
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO messages (conversation_id, role, content)
                    VALUES (%s::uuid, %s, %s)
                    RETURNING id, conversation_id, role, content, created_at
                    """,
                    (conversation_id, role, content),
                )
                row = cur.fetchone()
                cur.execute(
                    "UPDATE conversations SET updated_at = NOW() WHERE id = %s::uuid",
                    (conversation_id,),
                )
            conn.commit()
            return _serialize_row(row)

        return self._execute_with_retry(_op, "add_message")

    def get_messages(self, conversation_id: str, user_id: str) -> list[dict]:
        """Get all messages for a conversation (verified by user_id)."""
        sql = """
        SELECT m.id, m.conversation_id, m.role, m.content, m.created_at
        FROM messages m
        JOIN conversations c ON c.id = m.conversation_id
        WHERE m.conversation_id = %s::uuid AND c.user_id = %s::uuid
        ORDER BY m.created_at ASC
        """
        return self._fetch_all(sql, (conversation_id, user_id), "get_messages")

    # =========================================================================
    # Drafts
    # =========================================================================

    _DRAFT_COLUMNS = (
        "id, user_id, organization_id, conversation_id, title, document_type, content, "
        "current_version, status, metadata, created_at, updated_at"
    )

    def create_draft(
        self,
        user_id: str,
        organization_id: Optional[str],
        title: str,
        content: dict,
        document_type: Optional[str] = None,
        conversation_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> dict:
        """Create a draft at version 1 and snapshot that version."""
        content_json = json.dumps(content)

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO document_drafts
                        (user_id, organization_id, conversation_id, title, document_type,
                         content, current_version, status, metadata)
                    VALUES (%s::uuid, %s::uuid, %s::uuid, %s, %s, %s::jsonb, 1, 'draft', %s::jsonb)
                    RETURNING {self._DRAFT_COLUMNS}
                    """,
                    (
                        user_id, organization_id, conversation_id, title, document_type,
                        content_json, json.dumps(metadata or {}),
                    ),
                )
                draft = cur.fetchone()
                cur.execute(
                    """
                    INSERT INTO draft_versions (draft_id, version_number, content, changes_summary)
                    VALUES (%s, 1, %s::jsonb, %s)
                    """,
                    (draft["id"], content_json, "Initial version"),
                )
            conn.commit()
            return _serialize_row(draft)

        return self._execute_with_retry(_op, "create_draft")

    def update_draft(
        self,
        draft_id: str,
        user_id: str,
        title: Optional[str] = None,
        content: Optional[dict] = None,
        status: Optional[str] = None,
        changes_summary: Optional[str] = None,
    ) -> Optional[dict]:
        """
        Update a draft. A content change bumps current_version and stores a
        snapshot in draft_versions.

        Returns:
            The updated draft, or None if it does not exist for this user
        """
        content_json = json.dumps(content) if content is not None else None

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE document_drafts
                    SET title = COALESCE(%s, title),
                        status = COALESCE(%s, status),
                        content = COALESCE(%s::jsonb, content),
                        current_version = current_version + CASE WHEN %s::jsonb IS NULL THEN 0 ELSE 1 END,
                        updated_at = NOW()
                    WHERE id = %s::uuid AND user_id = %s::uuid
                    RETURNING {self._DRAFT_COLUMNS}
                    """,
                    (title, status, content_json, content_json, draft_id, user_id),
                )
                draft = cur.fetchone()
                if draft is not None and content_json is not None:
                    cur.execute(
                        """
                        INSERT INTO draft_versions (draft_id, version_number, content, changes_summary)
                        VALUES (%s, %s, %s::jsonb, %s)
                        """,
                        (draft["id"], draft["current_version"], content_json, changes_summary),
                    )
            conn.commit()
            return _serialize_row(draft)

        return self._execute_with_retry(_op, "update_draft")

    def get_draft(self, draft_id: str, user_id: str) -> Optional[dict]:
        sql = f"SELECT {self._DRAFT_COLUMNS} FROM document_drafts WHERE id = %s::uuid AND user_id = %s::uuid"
        return self._fetch_one(sql, (draft_id, user_id), "get_draft")

    def list_drafts(self, user_id: str) -> list[dict]:
        sql = f"""
        SELECT {self._DRAFT_COLUMNS} FROM document_drafts
        WHERE user_id = %s::uuid
        ORDER BY updated_at DESC
        """
        return self._fetch_all(sql, (user_id,), "list_drafts")

    def list_draft_versions(self, draft_id: str, user_id: str) -> list[dict]:
        """Version history of a draft, newest first."""
        sql = """
        SELECT v.id, v.draft_id, v.version_number, v.content, v.changes_summary, v.created_at
        FROM draft_versions v
        JOIN document_drafts d ON d.id = v.draft_id
        WHERE v.draft_id = %s::uuid AND d.user_id = %s::uuid
        ORDER BY v.version_number DESC
        """
        return self._fetch_all(sql, (draft_id, user_id), "list_draft_versions")

    # =========================================================================
    # Rate limits & usage
    # =========================================================================

    def check_rate_limit(self, user_id: str, action_type: str, limit: int, window_minutes: int) -> bool:
        """Record an action and return whether the user is still within the limit."""
        row = self._fetch_one(
            "SELECT check_rate_limit(%s::uuid, %s, %s, %s) AS allowed",
            (user_id, action_type, limit, window_minutes),
            "check_rate_limit",
            commit=True,
        )
        return bool(row and row["allowed"])

    def check_org_rate_limit(
        self, organization_id: str, action_type: str, limit: int, window_minutes: int
    ) -> bool:
        """Return whether the organization is still within its usage limit."""
        row = self._fetch_one(
            "SELECT check_org_rate_limit(%s::uuid, %s, %s, %s) AS allowed",
            (organization_id, action_type, limit, window_minutes),
            "check_org_rate_limit",
        )
        return bool(row and row["allowed"])

    def log_usage(
        self,
        user_id: str,
        organization_id: Optional[str],
        action_type: str,
        resource_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Append a usage log row."""
        sql = """
        INSERT INTO usage_logs (user_id, organization_id, action_type, resource_id, metadata)
        VALUES (%s::uuid, %s::uuid, %s, %s::uuid, %s::jsonb)
        """
        self._execute(
            sql,
            (user_id, organization_id, action_type, resource_id, json.dumps(metadata or {})),
            "log_usage",
        )


# Global instance for reuse
_store: Optional[VectorStore] = None


def get_vector_store() -> VectorStore:
    """Return the process-wide store, connecting on first use."""
    global _store
    if _store is None:
        _store = VectorStore()
        _store.connect()
    return _store


if __name__ == "__main__":
    import argparse
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Briefly database setup")
    parser.add_argument("--init", action="store_true", help="Create tables and SQL functions")
    parser.add_argument("--rls", action="store_true", help="Enable Row-Level Security")
    parser.add_argument("--index", action="store_true", help="Create HNSW vector indexes")
    args = parser.parse_args()

    store = get_vector_store()
    if args.init:
        store.initialize_schema()
    if args.rls:
        store.enable_rls()
    if args.index:
        store.create_vector_index()
    print(f"Database reachable: {store.ping()}")
    store.close()
