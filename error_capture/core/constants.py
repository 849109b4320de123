"""
Constants
Centralised storage for routes, severities, lifecycle hooks and store limits.
"""
ERRORS_PATH = "/_dev/errors"
STATS_PATH = "/_dev/errors/stats"
HEALTH_PATH = "/_dev/health"

SERVICE_NAME = "error-capture"

SEVERITIES = ("error", "warning", "fatal")

LIFECYCLE_HOOKS = (
    "constructor",
    "connectedCallback",
    "disconnectedCallback",
    "renderedCallback",
    "errorCallback",
    "render",
)

# Path fragments that mark third-party code in a stack frame
DEPENDENCY_MARKERS = ("node_modules", "bower_components", "jspm_packages")

# Fields the browser reporter attaches for its own console output
CLIENT_ONLY_FIELDS = ("_clientParsedStack",)

DEFAULT_MAX_STORED_ERRORS = 1000
DEFAULT_QUERY_LIMIT = 100
MAX_STATE_DEPTH = 3

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
