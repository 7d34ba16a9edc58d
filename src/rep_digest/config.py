"""
Settings for the monthly sales digest.

Settings come from a YAML file (a top-level ``digest`` section), then
environment variables, which win. A ``.env`` file is loaded first when
present so local runs can keep secrets out of the YAML.

Expected YAML format:
```yaml
digest:
  sender: sales-digest@example.com
  admin_recipient: sales-admin
  max_concurrency: 4
  retry:
    max_attempts: 3
    backoff_seconds: 1.0
  artifact_dir: artifacts
  escape_csv_fields: false
  journal_path: data/dispatch_journal.json
  recipients:
    sales-admin: sales-admin@example.com
    "-5": sales-admin@example.com
    "rep1": jordan.rep@example.com
  smtp:
    host: smtp.example.com
    port: 587
    use_tls: true
```
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from rep_digest.core.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/digest.yaml"

# env var -> (section path inside the settings dict)
ENV_OVERRIDES = {
    "DIGEST_SENDER": ("sender",),
    "DIGEST_ADMIN_RECIPIENT": ("admin_recipient",),
    "DIGEST_SUBJECT": ("subject",),
    "DIGEST_MAX_CONCURRENCY": ("max_concurrency",),
    "DIGEST_MAX_ATTEMPTS": ("retry", "max_attempts"),
    "DIGEST_BACKOFF_SECONDS": ("retry", "backoff_seconds"),
    "DIGEST_ARTIFACT_DIR": ("artifact_dir",),
    "DIGEST_ESCAPE_CSV_FIELDS": ("escape_csv_fields",),
    "DIGEST_JOURNAL_PATH": ("journal_path",),
    "SMTP_HOST": ("smtp", "host"),
    "SMTP_PORT": ("smtp", "port"),
    "SMTP_USERNAME": ("smtp", "username"),
    "SMTP_PASSWORD": ("smtp", "password"),
    "SMTP_USE_TLS": ("smtp", "use_tls"),
}


class RetryPolicy(BaseModel):
    """
    Per-unit retry budget shared by the map and reduce stages.

    Attributes:
        max_attempts: Total attempts per unit, including the first
        backoff_seconds: Delay before a failed reduce unit is re-run
    """

    max_attempts: int = Field(3, ge=1, le=20)
    backoff_seconds: float = Field(0.0, ge=0.0, le=300.0)


class SmtpSettings(BaseModel):
    host: str = "localhost"
    port: int = Field(25, ge=1, le=65535)
    username: str | None = None
    password: str | None = None
    use_tls: bool = False
    timeout: float = Field(30.0, gt=0)


class DigestSettings(BaseModel):
    """
    Attributes:
        sender: Sender identity for every notification
        admin_recipient: Mailbox identifier that receives the unassigned-orders report
        subject: Subject line for every notification
        max_concurrency: Worker pool size for both stages
        retry: Unit retry policy
        artifact_dir: Directory reports are written to
        escape_csv_fields: Quote cells containing commas, quotes or newlines
        journal_path: Dispatch journal file used by resumed runs
        recipients: Address book mapping recipient identifiers to e-mail addresses
        smtp: Outgoing mail server
    """

    sender: str = Field("sales-digest", min_length=1)
    admin_recipient: str = Field("sales-admin", min_length=1)
    subject: str = "Monthly Sales Data"
    max_concurrency: int = Field(4, ge=1, le=64)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    artifact_dir: Path = Path("artifacts")
    escape_csv_fields: bool = False
    journal_path: Path | None = None
    recipients: dict[str, str] = Field(default_factory=dict)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)


def _set_path(target: dict[str, Any], path: tuple[str, ...], value: str) -> None:
    for part in path[:-1]:
        target = target.setdefault(part, {})
    target[path[-1]] = value


def _read_yaml(config_path: Path) -> dict[str, Any]:
    with open(config_path) as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not config or "digest" not in config:
        raise ConfigurationError(f"{config_path} must contain a 'digest' section")
    if not isinstance(config["digest"], dict):
        raise ConfigurationError(f"'digest' section in {config_path} must be a mapping")
    return config["digest"]


def load_settings(
    config_path: str | Path | None = None,
    env: dict[str, str] | None = None,
) -> DigestSettings:
    """
    Load digest settings.

    Args:
        config_path: YAML file; defaults to env var DIGEST_CONFIG or config/digest.yaml.
            A missing default file is not an error, a missing explicit file is.
        env: Environment mapping (defaults to os.environ after loading .env)

    Returns:
        Validated DigestSettings

    Raises:
        ConfigurationError: If the file is unreadable or values fail validation
    """
    if env is None:
        load_dotenv(os.getenv("ENV_FILE", ".env"))
        env = dict(os.environ)

    explicit = config_path is not None or "DIGEST_CONFIG" in env
    path = Path(config_path or env.get("DIGEST_CONFIG", DEFAULT_CONFIG_PATH))

    raw: dict[str, Any] = {}
    if path.is_file():
        raw = _read_yaml(path)
    elif explicit:
        raise ConfigurationError(f"Configuration file not found: {path}")

    for name, section_path in ENV_OVERRIDES.items():
        value = env.get(name)
        if value not in (None, ""):
            _set_path(raw, section_path, value)

    try:
        return DigestSettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid digest settings: {e}") from e
