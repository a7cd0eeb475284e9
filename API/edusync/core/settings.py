from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    app_host: str = "127.0.0.1"
    app_port: int = 8765
    log_level: str = "INFO"

    server_base_url: str = "http://localhost:5000/api"
    request_timeout_seconds: float = 20.0
    auth_token: str = ""
    student_id: str = ""
    start_online: bool = True

    local_store_backend: str = "sql"
    local_store_url: str = "sqlite+aiosqlite:///data/client/edusync.db"
    local_store_dir: str = "data/client"

    max_action_retries: int = 3
    replay_exhausted_policy: str = "drop"  # drop | retain
    replay_followup_enabled: bool = True
    replay_backoff_base_seconds: float = 2.0
    replay_backoff_max_seconds: float = 60.0
    replay_max_followup_passes: int = 5
    queueable_path_prefixes: list[str] = ["/lessons/"]

    translation_cache_ttl_days: int = 7
    translation_cache_fallbacks: bool = False

    gateway_breaker_failure_threshold: int = 4
    gateway_breaker_recovery_seconds: float = 30.0

    agent_auth_enabled: bool = False
    agent_api_key: str = ""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
