"""Constants for the lab deployment installer."""

from pathlib import Path

APP_NAME = "labdeploy"

STATE_FILE = ".labdeploy-state.json"
LOG_FILE = "labdeploy.log"
RESULT_FILE = "mcp-lab-access.txt"

DEFAULT_RESOURCE_GROUP = "mcp-lab-rg"
DEFAULT_REPO = "mcp-lab/mcp-lab-server"
DEFAULT_BRANCH = "main"
DEFAULT_IMAGE_REPOSITORY = "mcp-server"
DEFAULT_IMAGE_TAG = "v1"
DEFAULT_TEMPLATE = str(Path(__file__).parent / "infra" / "main.bicep")

GITHUB_ARCHIVE_URL = "https://codeload.github.com/{owner}/{name}/zip/refs/heads/{branch}"
HTTP_TIMEOUT = 60

# Provider registration polling
PROVIDER_POLL_ATTEMPTS = 30
PROVIDER_POLL_INTERVAL = 10.0

# Fixed deployment output keys
OUTPUT_ENDPOINT = "apiBaseUrl"
OUTPUT_HEADER_NAME = "apiKeyHeaderName"
EXPECTED_OUTPUTS = (OUTPUT_ENDPOINT, OUTPUT_HEADER_NAME)

# Parameters the core always supplies
PARAM_CREDENTIAL = "mcpApiKey"
REQUIRED_PARAMETERS = (
    "location",
    "registryName",
    "imageRepository",
    "imageTag",
    "environmentName",
    "containerAppName",
    PARAM_CREDENTIAL,
)

BUILD_DESCRIPTOR = "Dockerfile"
SOURCE_MARKERS = (
    "pyproject.toml",
    "requirements.txt",
    "setup.py",
    "package.json",
    "go.mod",
)
