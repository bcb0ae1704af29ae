import os
from pathlib import Path

from dhcore.internal.constants import APP_DIR_NAME, LOG_FILE_NAME


# ---------------------------------------------------------------------
# Base directories
# ---------------------------------------------------------------------

def get_app_data_dir() -> Path:
    """
    Returns the application data directory.

    - DHCORE_HOME if set
    - Windows: %APPDATA%\\dhcore
    - Linux/macOS: ~/.dhcore
    """
    override = os.environ.get("DHCORE_HOME")
    if override:
        path = Path(override)
    elif os.name == "nt":  # Windows
        base = os.environ.get("APPDATA", str(Path.home()))
        path = Path(base) / "dhcore"
    else:  # Linux / macOS
        path = Path.home() / APP_DIR_NAME

    path.mkdir(parents=True, exist_ok=True)
    return path


def get_logs_dir() -> Path:
    path = get_app_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_file() -> Path:
    """
    Default JSON log file used by `configure_default_logging`.
    """
    return get_logs_dir() / LOG_FILE_NAME
