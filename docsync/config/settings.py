from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "docsync"
    db_username: str = "docsync"
    db_password: str = "secret"

    enable_jobs: bool = True
    max_job_attempts: int = 3
    preview_poll_interval_seconds: int = 5
    export_poll_interval_seconds: int = 5
    upload_poll_interval_seconds: int = 30
    preview_timeout_seconds: int = 60
    export_timeout_seconds: int = 300
    upload_batch_size: int = 10
    stale_job_lease_seconds: int = 900

    pdf_engine: str = "pymupdf"

    document_store: str = "local"
    files_root: str = "/app/files"
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_bucket: str = "documents"

    token_encryption_key: str = ""
    oauth_state_secret: str = ""
    token_refresh_buffer_minutes: int = 5

    google_drive_client_id: str = ""
    google_drive_client_secret: str = ""
    google_drive_redirect_uri: str = ""

    microsoft_client_id: str = ""
    microsoft_client_secret: str = ""
    microsoft_redirect_uri: str = ""

    http_timeout_seconds: int = 30
    upload_chunk_retries: int = 2

    frontend_url: str = "http://localhost:3000"
    api_key: str = ""
    api_host: str = "0.0.0.0"
    api_port: int = 8000
