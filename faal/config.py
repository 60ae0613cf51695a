"""
Configuration management using Pydantic Settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="FAAL_", extra="ignore")
    LOG_LEVEL: str = "INFO"
    # 'json' for machine-readable output, 'console' for local development
    LOG_FORMAT: str = "json"
    # Per-request HTTP timeout for WebDAV, in seconds
    WEBDAV_TIMEOUT: float = 30.0
    # NetBIOS name this client announces to SMB servers
    SMB_CLIENT_NAME: str = "faal_client"
    SMB_TIMEOUT: int = 30

settings = Settings()
