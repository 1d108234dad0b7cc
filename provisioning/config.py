from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="PROVISION_", extra="ignore"
    )

    app_name: str = "Server Provisioning Providers"
    app_version: str = "0.1.0"
    env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Transport defaults handed to every vendor API client
    http_connect_timeout: float = 10.0
    http_timeout: float = 120.0

    # Raw vendor bodies attached to errors are cut to this many characters
    error_body_limit: int = 1000


settings = Settings()
