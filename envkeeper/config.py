"""
Settings for envkeeper

Defaults live here; a handful of ENVKEEPER_* environment variables can
override them. Settings are built once and handed to create_context().
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


def default_data_dir() -> Path:
    """~/.local/share/envkeeper"""
    return Path.home() / ".local" / "share" / "envkeeper"


@dataclass
class Settings:
    """Runtime configuration"""
    state_dir: Path = field(default_factory=default_data_dir)
    state_file: str = "environment_state.json"
    log_dir: Optional[Path] = None
    export_dir: Optional[Path] = None

    # Seconds
    scan_timeout: int = 30
    update_timeout: int = 45
    verify_timeout: int = 5
    detect_timeout: int = 5

    advisory_base_url: str = "https://api.openai.com/v1"
    advisory_model: str = "gpt-4o-mini"
    advisory_api_key: str = ""
    advisory_timeout: int = 60

    allow_dangerous_commands: bool = False

    def __post_init__(self):
        self.state_dir = Path(self.state_dir)
        if self.log_dir is None:
            self.log_dir = self.state_dir / "logs"
        if self.export_dir is None:
            self.export_dir = self.state_dir / "exports"
        self.log_dir = Path(self.log_dir)
        self.export_dir = Path(self.export_dir)

    @property
    def state_path(self) -> Path:
        return self.state_dir / self.state_file


# Environment variable -> (Settings field, converter)
ENV_OVERRIDES = {
    "ENVKEEPER_STATE_DIR": ("state_dir", Path),
    "ENVKEEPER_LOG_DIR": ("log_dir", Path),
    "ENVKEEPER_EXPORT_DIR": ("export_dir", Path),
    "ENVKEEPER_ADVISORY_URL": ("advisory_base_url", str),
    "ENVKEEPER_ADVISORY_MODEL": ("advisory_model", str),
    "ENVKEEPER_ADVISORY_KEY": ("advisory_api_key", str),
    "ENVKEEPER_ALLOW_DANGEROUS": ("allow_dangerous_commands",
                                  lambda v: v.strip().lower() in ("1", "true", "yes")),
}


def load_settings(environ: Optional[Dict[str, str]] = None, **overrides) -> Settings:
    """Build Settings from defaults, environment variables and keyword overrides

    Args:
        environ: Mapping to read overrides from (default: os.environ)
        **overrides: Explicit field values, applied last

    Returns:
        Settings instance
    """
    if environ is None:
        environ = os.environ

    values = {}
    for var, (field_name, convert) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw:
            values[field_name] = convert(raw)

    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
