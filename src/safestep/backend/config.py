"""Configuration module for the SafeStep service."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = os.path.join(Path(__file__).parent.parent.parent.parent, '.env')
load_dotenv(env_path)


def _env_bool(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Base configuration class for the SafeStep service."""

    # Application info
    APP_NAME = 'SafeStep'
    VERSION = '1.0.0'

    # Flask configuration
    SECRET_KEY = os.getenv('SAFESTEP_SECRET_KEY', 'safestep-dev-secret-key')
    HOST = os.getenv('SAFESTEP_HOST', '0.0.0.0')
    PORT = int(os.getenv('SAFESTEP_PORT', 5000))
    DEBUG = _env_bool('SAFESTEP_DEBUG')

    # File paths
    BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
    DATA_DIR = os.getenv('SAFESTEP_DATA_DIR', os.path.join(BASE_DIR, 'data'))
    SETTINGS_FILE = os.getenv('SAFESTEP_SETTINGS_FILE', os.path.join(DATA_DIR, 'config', 'settings.json'))

    # Logging
    LOG_LEVEL = os.getenv('SAFESTEP_LOG_LEVEL', 'INFO')

    # Record store: "file" writes JSON under DATA_DIR, "cloud" PUTs to CLOUD_URL
    RECORD_STORE = os.getenv('SAFESTEP_RECORD_STORE', 'file')
    CLOUD_URL = os.getenv('SAFESTEP_CLOUD_URL', '')
    CLOUD_API_KEY = os.getenv('SAFESTEP_CLOUD_API_KEY', '')

    # Sample batching and upload
    BATCH_SIZE = int(os.getenv('SAFESTEP_BATCH_SIZE', 3000))
    UPLOAD_MAX_ATTEMPTS = int(os.getenv('SAFESTEP_UPLOAD_MAX_ATTEMPTS', 5))
    UPLOAD_RETRY_DELAY = float(os.getenv('SAFESTEP_UPLOAD_RETRY_DELAY', 2.0))  # seconds

    # Sensor scanning (dBm)
    PRIMARY_RSSI_THRESHOLD = int(os.getenv('SAFESTEP_PRIMARY_RSSI_THRESHOLD', -90))
    SECONDARY_RSSI_THRESHOLD = int(os.getenv('SAFESTEP_SECONDARY_RSSI_THRESHOLD', -999))

    # Periodic jobs (seconds)
    STATUS_POLL_INTERVAL = float(os.getenv('SAFESTEP_STATUS_POLL_INTERVAL', 1))
    BATTERY_POLL_INTERVAL = float(os.getenv('SAFESTEP_BATTERY_POLL_INTERVAL', 60))

    # Alerts
    DISCONNECT_ALERT_RATE_LIMIT = float(os.getenv('SAFESTEP_DISCONNECT_ALERT_RATE_LIMIT', 60))  # seconds
    DAYTIME_START_HOUR = int(os.getenv('SAFESTEP_DAYTIME_START_HOUR', 8))
    DAYTIME_END_HOUR = int(os.getenv('SAFESTEP_DAYTIME_END_HOUR', 18))

    # Fixed location for devices without GPS
    DEFAULT_LATITUDE = float(os.getenv('SAFESTEP_DEFAULT_LATITUDE', 0.0))
    DEFAULT_LONGITUDE = float(os.getenv('SAFESTEP_DEFAULT_LONGITUDE', 0.0))
    DEFAULT_ALTITUDE = float(os.getenv('SAFESTEP_DEFAULT_ALTITUDE', 0.0))

    # Mock sensor stream rate for development (0 disables streaming)
    MOCK_STREAM_RATE = float(os.getenv('SAFESTEP_MOCK_STREAM_RATE', 50.0))  # Hz
