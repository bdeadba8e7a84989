"""
Studio CRM Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


class Config:
    """Application configuration."""

    # Database: must be set in .env; never hardcode credentials here
    DATABASE_URL = os.getenv('DATABASE_URL')
    if not DATABASE_URL:
        _logger.critical("DATABASE_URL is not set — cannot start. Copy .env.example to .env and configure it.")
        raise ValueError("DATABASE_URL environment variable is not set. Copy .env.example to .env and configure it.")

    # Timezone used when printing dates in the CLI
    TIMEZONE = os.getenv('TIMEZONE', 'Europe/Berlin')

    # Delivery window (days from event completion to gallery delivery)
    DEFAULT_DELIVERY_WINDOW_DAYS = int(os.getenv('DEFAULT_DELIVERY_WINDOW_DAYS', '60'))
    MAX_DELIVERY_WINDOW_DAYS = int(os.getenv('MAX_DELIVERY_WINDOW_DAYS', '365'))

    # Reminder run: notify this many days before the estimated delivery date
    REMINDER_DAYS_BEFORE_DUE = int(os.getenv('REMINDER_DAYS_BEFORE_DUE', '3'))


# Singleton instance
config = Config()
