"""Shared constants for hc-admin."""

from pathlib import Path


HOME_DIR = Path.home() / ".hc-admin"
LOG_DIR = HOME_DIR / "logs"
LOG_FILE_NAME = "hc-admin.log"
MANIFEST_NAME = ".hc"
CONFIG_FILENAME = "conductor-config.yaml"
SETUP_PREFIX = "hc-"
HOLOCHAIN_PATH = "holochain"
HOLOCHAIN_PATH_ENV_VAR = "HC_HOLOCHAIN_PATH"
LAUNCH_TIMEOUT_ENV_VAR = "HC_LAUNCH_TIMEOUT"
ADMIN_HOST = "127.0.0.1"
ADMIN_PORT_MARKER = "###ADMIN_PORT:"
LAUNCH_TIMEOUT_SECONDS = 30.0
TERMINATE_GRACE_SECONDS = 5.0
DEFAULT_APP_ID = "test-app"
CLOSE_REASON = "closing connection"
MESSAGE_PREFIX = "hc-admin:"
