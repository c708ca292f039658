"""Shared constants for devbootstrap."""

REQUIRED_KEYS = ("GIT_USER_NAME", "GIT_USER_EMAIL")
UAT_DB_KEYS = ("UAT_DB_HOST", "UAT_DB_PORT", "UAT_DB_NAME", "UAT_DB_USER", "UAT_DB_PASSWORD")
UAT_ZITADEL_KEYS = ("UAT_ZITADEL_URL", "UAT_ZITADEL_SERVICE_USER", "UAT_ZITADEL_SERVICE_KEY")

MODES = ("local", "uat")
DEFAULT_MODE = "local"

DEFAULT_CONFIG_FILE = "setup.env"
DEFAULT_SETTINGS_FILE = ".devbootstrap.yml"
DEFAULT_LOG_FILE = "devbootstrap.log"
STATE_DIR = ".devbootstrap"

BACKEND_REPO_URL = "git@github.com:quotechltd/workbench.git"
FRONTEND_REPO_URL = "git@github.com:quotechltd/frontend.git"

HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
HOMEBREW_PATHS = ("/opt/homebrew/bin/brew", "/usr/local/bin/brew")

DOCKER_SETTINGS_RELPATH = "Library/Group Containers/group.com.docker/settings-store.json"

POSTGRES_SERVICE = "postgres"
DEFAULT_LOCAL_DB_USER = "workbench_owner"
DEFAULT_LOCAL_DB_NAME = "workbench"

DEFAULT_LOCAL_ZITADEL_URL = "http://localhost:9010"
DEFAULT_TEST_USER_EMAIL = "test.user@local.dev"
DEFAULT_TEST_USER_PASSWORD = "TestPassword123!"
ZITADEL_TOKEN_SCOPE = "openid profile email urn:zitadel:iam:org:project:id:zitadel:aud"
PAT_MIN_LENGTH = 50

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_MIN_DISK_GB = 20
DEFAULT_BACKEND_PORT = 8000
DEFAULT_FRONTEND_PORT = 5173
MIN_GO_VERSION = "1.22"

TRUTHY_VALUES = {"1", "true", "yes", "y", "on"}
