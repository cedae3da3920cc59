"""Connection configuration for the Jira sync server.

Reads Jira connection settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    JIRA_DOMAIN: Jira Cloud site, e.g. acme.atlassian.net (required)
    JIRA_EMAIL: Account email used for basic auth (required)
    JIRA_API_TOKEN: API token for the account (required)
    JIRA_PROJECT_KEY: Project key to sync (optional, e.g. ABC)
    JIRA_INSECURE: Skip SSL verification (optional, default: false)
    JIRA_API_VERSION: REST API version, 2 or 3 (optional, default: 2)
    JIRA_TIMEOUT: Read timeout in seconds (optional, default: 60)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from .validators import validate_project_key

logger = logging.getLogger(__name__)


@dataclass
class Config:
    domain: str
    email: str
    api_token: str
    project_key: str | None = None
    insecure: bool = False
    debug: bool = False
    api_version: int = 2
    timeout: float = 60.0

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}/rest/api/{self.api_version}"


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the domain, credentials or project key are invalid.
    """
    domain = config.domain.strip()
    # Accept a pasted site URL and keep only the host
    if domain.startswith(("http://", "https://")):
        domain = urlparse(domain).hostname or ""
    domain = domain.removesuffix("/")
    if not domain or "/" in domain or " " in domain:
        raise ValueError(
            f"Invalid Jira domain '{config.domain}': expected a host name such as acme.atlassian.net"
        )
    config.domain = domain

    if "@" not in config.email:
        raise ValueError(
            f"Invalid Jira email '{config.email}'. Set JIRA_EMAIL environment variable."
        )

    if not config.api_token.strip():
        raise ValueError(
            "Jira API token cannot be empty. Set JIRA_API_TOKEN environment variable."
        )

    if config.project_key:
        is_valid, reason = validate_project_key(config.project_key)
        if not is_valid:
            raise ValueError(reason)

    if config.api_version not in (2, 3):
        raise ValueError(
            f"Invalid JIRA_API_VERSION '{config.api_version}': must be 2 or 3"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def load_config(
    domain: str | None = None,
    email: str | None = None,
    api_token: str | None = None,
    project_key: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        domain: Override Jira domain.
        email: Override account email.
        api_token: Override API token.
        project_key: Override project key.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from YAML config file ``jira`` section.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config (domain, email, token) is missing
            after checking all sources, or a numeric value is malformed.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error ---

    jira_domain = domain or os.getenv("JIRA_DOMAIN") or fb.get("domain")
    if not jira_domain:
        raise ValueError(
            "Jira domain not found. Set JIRA_DOMAIN environment variable, "
            "pass --domain CLI argument, or add 'domain' to config.yml."
        )

    jira_email = email or os.getenv("JIRA_EMAIL") or fb.get("email")
    if not jira_email:
        raise ValueError(
            "Jira email not found. Set JIRA_EMAIL environment variable, "
            "pass --email CLI argument, or add 'email' to config.yml."
        )

    jira_token = (
        api_token or os.getenv("JIRA_API_TOKEN") or fb.get("api_token")
    )
    if not jira_token:
        raise ValueError(
            "Jira API token not found. Set JIRA_API_TOKEN environment variable "
            "or add 'api_token' to config.yml."
        )

    jira_project_key = (
        project_key
        or os.getenv("JIRA_PROJECT_KEY")
        or fb.get("project_key")
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if insecure:
        final_insecure = True
    else:
        env_insecure = get_bool_env("JIRA_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("JIRA_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    api_version_raw = os.getenv("JIRA_API_VERSION")
    if api_version_raw is not None:
        try:
            final_api_version = int(api_version_raw)
        except ValueError:
            raise ValueError(
                f"Invalid JIRA_API_VERSION '{api_version_raw}': must be 2 or 3"
            ) from None
    else:
        final_api_version = int(fb.get("api_version", 2))

    timeout_raw = os.getenv("JIRA_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid JIRA_TIMEOUT '{timeout_raw}': must be a number of seconds between 1 and 600"
            ) from None
        if not (1 <= final_timeout <= 600):
            raise ValueError(
                f"Invalid JIRA_TIMEOUT '{timeout_raw}': must be a number of seconds between 1 and 600"
            )
    else:
        final_timeout = float(fb.get("timeout", 60.0))

    config = Config(
        domain=jira_domain.strip(),
        email=jira_email.strip(),
        api_token=jira_token.strip(),
        project_key=jira_project_key.strip() if jira_project_key else None,
        insecure=final_insecure,
        debug=final_debug,
        api_version=final_api_version,
        timeout=final_timeout,
    )

    validate_config(config)

    return config
