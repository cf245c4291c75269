"""
rpcctl shared configuration, constants, and module-level state.

Runtime knobs come from the project .env file (with an os.environ fallback
for the known RPCCTL_* keys). Environments, tokens and aliases come from the
settings document at <RPCCTL_HOME>/setting.yaml.
"""

import os
import tempfile

import yaml

from rpcctl_cli.exceptions import CliError, ConfigurationError, SetupError
from rpcctl_cli.models import EnvironmentConfig

# ---------------------------------------------------------------------------
# .env path and helpers
# ---------------------------------------------------------------------------

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
_PROJECT_ROOT = os.path.dirname(_PACKAGE_DIR)

ENV_PATH = os.path.join(_PROJECT_ROOT, ".env")

_KNOWN_ENV_KEYS = (
    "RPCCTL_HOME",
    "RPCCTL_RPC_TIMEOUT_SECONDS",
    "RPCCTL_MAX_MESSAGE_BYTES",
    "RPCCTL_RPC_LOG",
    "RPCCTL_HTTP_TIMEOUT_SECONDS",
    "RPCCTL_HTTP_MAX_RETRIES",
    "RPCCTL_HTTP_RETRY_BASE_SECONDS",
    "RPCCTL_HTTP_MAX_RESPONSE_BYTES",
    "RPCCTL_HTTP_LOG",
    "RPCCTL_API_NAMESPACE",
    "RPCCTL_PLUGIN_MARKER",
    "RPCCTL_CACHE_TTL_SECONDS",
    "RPCCTL_CACHE_WARMUP_SECONDS",
)


def load_env():
    env = {}
    if os.path.exists(ENV_PATH):
        with open(ENV_PATH) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, val = line.split("=", 1)
                    env[key.strip()] = val.strip()
    # Container deployments pass settings through the environment instead.
    for key in _KNOWN_ENV_KEYS:
        if key not in env and os.environ.get(key):
            env[key] = os.environ[key]
    return env


def write_text_atomic(path, text):
    """Write *text* to *path* via temp file + rename so readers never see half a file."""
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".rpcctl_tmp_")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


def _env_bool(key, default=False):
    """Parse common boolean env formats."""
    raw = env.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(key, default):
    """Parse integer env values with fallback."""
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(key, default):
    """Parse float env values with fallback."""
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VERSION = "0.3.0"

VALID_FORMATS = ("yaml", "json", "table", "csv")
DEFAULT_FORMAT = "yaml"

BOOTSTRAP_SERVICE = "identity"
ENDPOINT_LIST_PATH = "/identity/endpoint/list"
DEFAULT_TLS_PORT = 443
MIN_HOST_LABELS = 4

ALIAS_LIST_PAGE_SIZE = 15
WATCH_INTERVAL_SECONDS = 2.0
WATCH_RECENT_ITEMS = 20
TABLE_HEADER_SAMPLE = 1000

# Product names whose API host label is not derivable from the short name.
SERVICE_HOST_LABELS = {
    "cost_analysis": "cost-analysis",
    "costanalysis": "cost-analysis",
    "file_manager": "file-manager",
    "filemanager": "file-manager",
    "spot_automation": "spot-automation",
    "spotautomation": "spot-automation",
}

# ---------------------------------------------------------------------------
# Module-level state (loaded from .env)
# ---------------------------------------------------------------------------

env = load_env()

RPCCTL_HOME = os.path.expanduser(env.get("RPCCTL_HOME") or os.path.join("~", ".rpcctl"))
SETTINGS_PATH = os.path.join(RPCCTL_HOME, "setting.yaml")
CACHE_DIR = os.path.join(RPCCTL_HOME, "cache")

API_NAMESPACE = env.get("RPCCTL_API_NAMESPACE", "spaceone.api")
PLUGIN_MARKER = env.get("RPCCTL_PLUGIN_MARKER", ".plugin.")

RPC_TIMEOUT_SECONDS = _env_float("RPCCTL_RPC_TIMEOUT_SECONDS", 30.0)
MAX_MESSAGE_BYTES = _env_int("RPCCTL_MAX_MESSAGE_BYTES", 10 * 1024 * 1024)
RPC_LOG_ENABLED = _env_bool("RPCCTL_RPC_LOG", False)

HTTP_TIMEOUT_SECONDS = _env_int("RPCCTL_HTTP_TIMEOUT_SECONDS", 30)
HTTP_MAX_RETRIES = _env_int("RPCCTL_HTTP_MAX_RETRIES", 0)
HTTP_RETRY_BASE_SECONDS = _env_float("RPCCTL_HTTP_RETRY_BASE_SECONDS", 1.0)
HTTP_MAX_RESPONSE_BYTES = _env_int("RPCCTL_HTTP_MAX_RESPONSE_BYTES", 5_000_000)
HTTP_LOG_ENABLED = _env_bool("RPCCTL_HTTP_LOG", False)

CACHE_TTL_SECONDS = _env_int("RPCCTL_CACHE_TTL_SECONDS", 24 * 60 * 60)
CACHE_WARMUP_SECONDS = _env_float("RPCCTL_CACHE_WARMUP_SECONDS", 0.05)

# Set by the CLI from global flags.
RUNTIME_QUIET = False
RUNTIME_VERBOSE = False

# ---------------------------------------------------------------------------
# Settings document (environments, tokens, aliases)
# ---------------------------------------------------------------------------


def load_settings(path=None):
    """Read the settings document. Raises SetupError when it does not exist."""
    path = path or SETTINGS_PATH
    if not os.path.exists(path):
        raise SetupError(
            f"[SETUP_NEEDED] No settings found at {path}.\n"
            "  Create it with an 'environment' and its 'environments.<name>.endpoint'."
        )
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"[ERROR] Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"[ERROR] Settings in {path} must be a mapping, got {type(data).__name__}."
        )
    return data


def _read_cached_token(env_name):
    token_path = os.path.join(CACHE_DIR, env_name, "access_token")
    try:
        with open(token_path) as f:
            return f.read().strip()
    except OSError:
        return ""


def active_environment(settings=None):
    """Return the selected EnvironmentConfig."""
    if settings is None:
        settings = load_settings()
    name = settings.get("environment")
    if not name:
        raise ConfigurationError(
            "[SETUP_NEEDED] No environment selected: set 'environment' in the settings.",
            field="environment",
        )
    environments = settings.get("environments") or {}
    env_settings = environments.get(name)
    if not isinstance(env_settings, dict):
        raise ConfigurationError(
            f"[ERROR] Environment '{name}' not found under 'environments'.",
            field=f"environments.{name}",
        )
    endpoint = str(env_settings.get("endpoint") or "").strip()
    if not endpoint:
        raise ConfigurationError(
            f"[ERROR] No endpoint configured for environment '{name}'.",
            field=f"environments.{name}.endpoint",
        )
    token = str(env_settings.get("token") or "").strip()
    if name.endswith("-user"):
        token = _read_cached_token(name) or token
    return EnvironmentConfig(name=name, endpoint=endpoint, token=token)


def service_aliases(service, settings=None):
    """Return {alias: "verb resource"} for one service."""
    if settings is None:
        settings = load_settings()
    short_names = settings.get("short_names") or {}
    aliases = short_names.get(service) or {}
    if not isinstance(aliases, dict):
        raise ConfigurationError(
            f"[ERROR] 'short_names.{service}' must be a mapping.",
            field=f"short_names.{service}",
        )
    return {str(k): str(v) for k, v in aliases.items() if v}


def lookup_alias(service, token, settings=None):
    """Resolve a service-scoped alias to (verb, resource), or None."""
    command = service_aliases(service, settings).get(token)
    if not command:
        return None
    parts = command.split()
    if len(parts) < 2:
        return None
    return parts[0], parts[1]


__all__ = [
    "CliError",
    "SetupError",
    "active_environment",
    "load_env",
    "load_settings",
    "lookup_alias",
    "service_aliases",
    "write_text_atomic",
]
