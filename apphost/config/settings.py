from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Platform Supabase (apps, teams, app_files, app_tables)
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for background workers (RLS bypass)

    # App database Supabase (tenant tables live here)
    app_db_url: str = ""
    app_db_anon_key: str = ""
    app_db_service_key: str = ""

    # Cloudflare Workers
    cloudflare_account_id: Optional[str] = None
    cloudflare_api_token: Optional[str] = None
    cloudflare_zone_id: Optional[str] = None
    cloudflare_api_base: str = "https://api.cloudflare.com/client/v4"
    base_domain: str = "overskill.app"

    # Cloudflare R2 (S3-compatible)
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_endpoint: Optional[str] = None
    r2_bucket: str = "apphost-assets-dev"
    r2_public_url: Optional[str] = None
    r2_files_bucket: Optional[str] = None  # Bucket for app source files during storage migration

    # External build service
    build_service_url: Optional[str] = None
    build_timeout_seconds: float = 300.0

    # Storage migration flags
    storage_enabled: bool = False
    storage_migration_phase: Optional[str] = None
    storage_disable_override: bool = False

    # Limits
    http_timeout_seconds: float = 30.0
    http_max_retries: int = 3
    http_backoff_seconds: float = 0.5
    asset_upload_concurrency: int = 4
    provision_concurrency: int = 4

    # Deferred RLS SQL files for operator replay
    pending_rls_dir: str = "tmp"

    # App
    app_name: str = "apphost"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cloudflare_configured(self) -> bool:
        return all([self.cloudflare_account_id, self.cloudflare_api_token, self.cloudflare_zone_id])

    @property
    def r2_configured(self) -> bool:
        return all([self.r2_access_key_id, self.r2_secret_access_key, self.r2_endpoint])

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
