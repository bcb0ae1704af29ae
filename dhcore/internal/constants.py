# ---------------------------------------------------------------------
# Core API
# ---------------------------------------------------------------------

DEFAULT_API_VERSION = "v1"
DEFAULT_HTTP_TIMEOUT = 30.0

PROJECTS_RESOURCE = "projects"
RUNS_RESOURCE = "runs"

# endpoint -> accepted aliases
RESOURCES = {
    "artifacts": ["artifact"],
    "dataitems": ["dataitem"],
    "functions": ["function", "fn"],
    "models": ["model"],
    "projects": ["project"],
    "runs": ["run"],
    "workflows": ["workflow"],
    "logs": ["log"],
}

# ---------------------------------------------------------------------
# Object store
# ---------------------------------------------------------------------

S3_SCHEME = "s3"
HTTP_SCHEMES = ("http", "https")

DEFAULT_BUCKET = "datalake"

# Objects up to this size go out in a single PutObject.
MULTIPART_THRESHOLD = 100 * 1024 * 1024

LIST_PAGE_SIZE = 1000
DOWNLOAD_CHUNK_SIZE = 128 * 1024
SNIFF_LEN = 512

# ---------------------------------------------------------------------
# Progress rendering
# ---------------------------------------------------------------------

PROGRESS_RENDER_INTERVAL = 0.1
SPINNER_FRAMES = "|/-\\"

# ---------------------------------------------------------------------
# Local files
# ---------------------------------------------------------------------

APP_DIR_NAME = ".dhcore"
LOG_FILE_NAME = "dhcore.log.json"
PARTIAL_SUFFIX = ".part"
