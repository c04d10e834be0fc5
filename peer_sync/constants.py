from dataclasses import dataclass


@dataclass
class Constants:
    DEBUG = False

    DEFAULT_PORT = "8080"
    DEFAULT_HOST = "localhost"

    MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB
    PROGRESS_TAG = "FILE_PROGRESS:"

    POLL_INTERVAL_SEC = 0.5  # 500ms
    NOTIFICATION_DURATION_SEC = 3
    SEND_GRACE_SEC = 1  # how long a finished send stays at 100% before it's removed

    REQUEST_TIMEOUT_SEC = 5
    UPLOAD_TIMEOUT_SEC = 60
    DOWNLOAD_BLOCK_SIZE = 1024  # 1 Kilobyte

    LOGGER_NAME = "peer_sync"
    LOG_FILE = "peer_sync.log"
