"""
Name: Application Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide defaults for pool sizing, deadlines, row caps and streaming

Collaborators:
  - api/main.py: reads settings for CORS, pool startup and warm-up
  - container.py: reads settings to build pool, validator, executor, stores
  - interfaces/api/http/schemas: reads request validation limits

Constraints:
  - Lives in API/infrastructure layer, NOT in domain/application
  - No business logic: configuration only
  - Credentials are never configured here directly in production:
    only the *name* of the secret (resolved through SecretProvider)

Notes:
  - Uses pydantic-settings for env parsing and validation
  - Singleton via lru_cache for performance
  - All limits configurable for different environments
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_env: Application environment (development/production)
        oracle_dsn: Easy Connect string or TNS alias (host:port/service)
        oracle_user: Database user
        oracle_password: Plain password (local development only)
        oracle_password_secret_name: Secret name resolved via SecretProvider
        key_vault_url: Azure Key Vault URL (enables Key Vault secrets)
        managed_identity_client_id: User-assigned managed identity (optional)
        fake_db: Use the in-process fake driver (CI / local dev)
        db_pool_min_size: Connections opened by warm-up (default: 2)
        db_pool_max_size: Hard upper bound of the pool (default: 10)
        db_pool_increment: Connections opened per growth step (default: 1)
        db_acquire_timeout_seconds: Max wait for an idle connection
        db_connect_deadline_seconds: Max total time retrying an unreachable DB
        query_timeout_seconds: Default execution deadline
        query_max_rows: Hard cap of materialized rows per request
        stream_batch_size: Rows per streamed batch (default: 100)
        validator_strict_mode: Force read-only for every request
        elevated_callers: Caller ids (X-Caller-Id) allowed to run destructive DDL
        healthcheck_timeout_seconds: Upper bound for /api/health probing
    """

    # Environment
    app_env: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # CORS configuration
    allowed_origins: str = "http://localhost:3000"

    # Oracle connectivity
    oracle_dsn: str = ""
    oracle_user: str = ""
    oracle_password: str = ""
    oracle_password_secret_name: str = "oracle-password"
    oracle_call_timeout_ms: int = 0

    # Secrets (Azure Key Vault + managed identity)
    key_vault_url: str = ""
    managed_identity_client_id: str = ""
    secret_cache_ttl_seconds: float = 300.0

    # Testing/CI
    fake_db: bool = False

    # Database - Connection Pool
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    db_pool_increment: int = 1
    db_acquire_timeout_seconds: float = 5.0
    db_connect_deadline_seconds: float = 30.0
    db_connect_backoff_base_seconds: float = 0.5
    db_connect_backoff_max_seconds: float = 8.0
    db_probe_on_release: bool = True
    db_slow_query_seconds: float = 0.25

    # Query execution
    query_timeout_seconds: float = 30.0
    query_max_rows: int = 1000
    stream_batch_size: int = 100
    max_query_chars: int = 20_000
    max_params: int = 256

    # Statement validator
    validator_strict_mode: bool = False
    elevated_callers: str = ""

    # Security - Hardening
    max_body_bytes: int = 10 * 1024 * 1024  # 10MB

    # Retry/Resilience
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 0.2
    retry_max_delay_seconds: float = 2.0

    # Sync reconciler
    sync_tracking_table: str = "SYNC_RECORDS"
    sync_key_column: str = "ID"
    sync_allowed_tables: str = ""
    sync_max_batch_size: int = 500
    sync_lock_stripes: int = 64

    # Background jobs
    redis_url: str = ""
    sync_queue_name: str = "sync"
    sync_job_timeout_seconds: int = 900
    worker_http_port: int = 8001
    workflow_progress_table: str = "WORKFLOW_PROGRESS"

    # Vector search (Oracle VECTOR_DISTANCE)
    vector_table: str = "DOCUMENT_CHUNKS"
    vector_id_column: str = "ID"
    vector_content_column: str = "CONTENT"
    vector_embedding_column: str = "EMBEDDING"
    vector_dimensions: int = 1536
    vector_distance_metric: str = "COSINE"
    max_top_k: int = 50

    # Health Check Configuration
    healthcheck_timeout_seconds: float = 3.0
    healthcheck_degraded_latency_ms: float = 1000.0

    @field_validator(
        "db_pool_max_size", "db_pool_increment", "stream_batch_size", "query_max_rows"
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("db_pool_min_size")
    @classmethod
    def min_size_must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("db_pool_min_size must be >= 0")
        return v

    @field_validator(
        "query_timeout_seconds",
        "db_acquire_timeout_seconds",
        "db_connect_deadline_seconds",
        "healthcheck_timeout_seconds",
    )
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be greater than 0")
        return v

    @field_validator("vector_distance_metric")
    @classmethod
    def vector_metric_valid(cls, v: str) -> str:
        metric = (v or "COSINE").strip().upper()
        if metric not in {"COSINE", "EUCLIDEAN", "DOT", "MANHATTAN"}:
            raise ValueError(
                "vector_distance_metric must be COSINE, EUCLIDEAN, DOT or MANHATTAN"
            )
        return metric

    @model_validator(mode="after")
    def validate_pool_bounds(self):
        if self.db_pool_min_size > self.db_pool_max_size:
            raise ValueError(
                f"db_pool_min_size ({self.db_pool_min_size}) must be <= "
                f"db_pool_max_size ({self.db_pool_max_size})"
            )
        return self

    @model_validator(mode="after")
    def validate_production_requirements(self):
        if not self.is_production():
            return self
        if self.fake_db:
            raise ValueError("FAKE_DB cannot be enabled in production")
        if self.oracle_password:
            raise ValueError(
                "ORACLE_PASSWORD must not be set in production; "
                "use KEY_VAULT_URL + ORACLE_PASSWORD_SECRET_NAME"
            )
        if not self.key_vault_url:
            raise ValueError("KEY_VAULT_URL is required in production")
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def get_allowed_origins_list(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]

    def get_sync_allowed_tables(self) -> frozenset[str]:
        """Upper-cased table allow-list for the sync reconciler (empty = any)."""
        return frozenset(
            name.strip().upper()
            for name in self.sync_allowed_tables.split(",")
            if name.strip()
        )

    def get_elevated_callers(self) -> frozenset[str]:
        """Caller ids allowed to request elevation (empty = nobody)."""
        return frozenset(
            caller.strip()
            for caller in self.elevated_callers.split(",")
            if caller.strip()
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()
