from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Record store: "json" (files under data_dir) or "supabase"
    record_store: str = "json"
    data_dir: str = "data"

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None

    # AWS (will read from uppercase env vars automatically)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    stack_name_prefix: str = "SCR-"
    bucket_name_prefix: str = "scr"
    presigned_url_expiry_seconds: int = 3600
    distribution_poll_interval_seconds: float = 10.0
    distribution_poll_attempts: int = 60

    # CDK toolchain
    toolchain_dir: str = "infrastructure/cdk"
    toolchain_dependency_dir: str = ".venv"
    cdk_command: str = "npx cdk"
    outputs_file: str = "cdk-outputs.json"
    deploy_timeout_seconds: float = 300.0
    require_fresh_outputs: bool = True

    # Terminal
    shell: str = "/bin/bash"
    command_timeout_seconds: float = 120.0
    kill_grace_seconds: float = 3.0

    # App
    app_name: str = "storage-console"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
