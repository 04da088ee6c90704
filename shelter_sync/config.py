"""
Configuration management for the shelter sync service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Toronto Shelter Sync"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Database
    database_url: str = "sqlite:///./shelters.db"

    # Toronto Open Data (CKAN)
    ckan_base_url: str = "https://ckan0.cf.opendata.inter.prod-toronto.ca/api/3/action"
    ckan_package_id: str = "21c83b32-d5a8-4106-a54f-010dbe49f6f2"
    ckan_page_size: int = 5000
    ckan_timeout_seconds: float = 30.0
    ckan_max_attempts: int = 3  # Retries per page on transient failure

    # Persistence
    program_batch_size: int = 500  # Rows per upsert statement

    # Sync schedule (daily refresh at 3am Toronto time)
    sync_schedule: str = "0 3 * * *"
    sync_timezone: str = "America/Toronto"
    enable_scheduler: bool = True
    sync_on_startup: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
