"""
Rendezvous Configuration Management
Handles environment variables, scheduling defaults, storage and API settings
"""

import os
from typing import List
from dataclasses import dataclass
from pathlib import Path
import logging

import pytz
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("memory", "sql")

@dataclass
class SchedulingConfig:
    """Defaults for slot generation and scoring"""
    default_timezone: str
    grid_step_minutes: int
    meeting_length_minutes: int
    max_candidates: int

    @classmethod
    def from_env(cls) -> 'SchedulingConfig':
        return cls(
            default_timezone=os.getenv('DEFAULT_TIMEZONE', 'UTC'),
            grid_step_minutes=int(os.getenv('SLOT_GRID_MINUTES', '30')),
            meeting_length_minutes=int(os.getenv('MEETING_LENGTH_MINUTES', '60')),
            max_candidates=int(os.getenv('MAX_CANDIDATES', '8'))
        )

@dataclass
class StorageConfig:
    """Thread / selection / finalize store configuration"""
    backend: str
    database_url: str
    echo_sql: bool = False

    @classmethod
    def from_env(cls) -> 'StorageConfig':
        return cls(
            backend=os.getenv('STORE_BACKEND', 'memory').lower(),
            database_url=os.getenv('DATABASE_URL', 'sqlite:///rendezvous.db'),
            echo_sql=os.getenv('SQL_ECHO', 'False').lower() == 'true'
        )

@dataclass
class APIConfig:
    """FastAPI Application Configuration"""
    host: str
    port: int
    debug: bool
    cors_origins: List[str]
    log_level: str

    @classmethod
    def from_env(cls) -> 'APIConfig':
        return cls(
            host=os.getenv('API_HOST', '0.0.0.0'),
            port=int(os.getenv('API_PORT', '8000')),
            debug=os.getenv('DEBUG', 'False').lower() == 'true',
            cors_origins=os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(','),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper()
        )

class Config:
    """Main Configuration Manager"""

    def __init__(self, env_file: Path = None):
        self.load_environment(env_file)

        self.scheduling = SchedulingConfig.from_env()
        self.storage = StorageConfig.from_env()
        self.api = APIConfig.from_env()

        self.validate_config()

    def load_environment(self, env_file: Path = None) -> None:
        """Load environment variables from a .env file if it exists"""
        env_path = Path(env_file) if env_file else Path(__file__).parent.parent / 'config' / '.env'

        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.info(f"Loaded environment from {env_path}")

    def validate_config(self) -> None:
        """Validate configuration values, reporting every problem at once"""
        errors = []

        try:
            pytz.timezone(self.scheduling.default_timezone)
        except pytz.UnknownTimeZoneError:
            errors.append(f"DEFAULT_TIMEZONE '{self.scheduling.default_timezone}' is not a known timezone")

        if self.scheduling.grid_step_minutes <= 0:
            errors.append("SLOT_GRID_MINUTES must be positive")
        if self.scheduling.meeting_length_minutes <= 0:
            errors.append("MEETING_LENGTH_MINUTES must be positive")
        if self.scheduling.max_candidates <= 0:
            errors.append("MAX_CANDIDATES must be positive")

        if self.storage.backend not in STORE_BACKENDS:
            errors.append(f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors)
            logger.error(error_msg)
            raise ValueError(error_msg)

        logger.debug("Configuration validation passed")

# Global configuration instance
config = Config()

__all__ = [
    'config',
    'STORE_BACKENDS',
    'SchedulingConfig',
    'StorageConfig',
    'APIConfig',
    'Config'
]
