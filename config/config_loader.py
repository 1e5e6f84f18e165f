# config/config_loader.py
"""
Config loader module for the ident service YAML configuration.
"""

from pathlib import Path

import yaml

DEFAULT_IDENT_PORT = 11300
DEFAULT_READ_TIMEOUT = 5.0
DEFAULT_MAX_LINE_LENGTH = 512


def _value_or_default(section, key, default):
    """A key left empty in YAML (`port:`) loads as None; treat it as unset."""
    value = section.get(key)
    return default if value is None else value


class ConfigLoader:
    """Loads the ident service configuration, filling in defaults."""

    def __init__(self, config_dir="config"):
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_all(self):
        """Load ident.yml and merge it over the defaults."""
        config = {}

        ident_path = self.config_dir / "ident.yml"
        if ident_path.exists():
            with open(ident_path) as f:
                ident_data = yaml.safe_load(f) or {}
        else:
            ident_data = self._create_default_config()
            self._save_config(ident_data)

        listener = ident_data.get("ident", {}) or {}
        config["ident"] = {
            "host": listener.get("host"),
            "port": _value_or_default(listener, "port", DEFAULT_IDENT_PORT),
            "read_timeout": _value_or_default(
                listener, "read_timeout", DEFAULT_READ_TIMEOUT
            ),
            "max_line_length": _value_or_default(
                listener, "max_line_length", DEFAULT_MAX_LINE_LENGTH
            ),
        }

        logging_data = ident_data.get("logging", {}) or {}
        config["logging"] = {
            "log_dir": logging_data.get("log_dir"),
            "level": logging_data.get("level", "INFO"),
            "json": logging_data.get("json", True),
        }

        registry_data = ident_data.get("registry", {}) or {}
        config["registry"] = {
            "connections": registry_data.get("connections", []) or [],
        }

        return config

    def _create_default_config(self):
        """Create default ident configuration."""
        return {
            "ident": {
                "host": None,
                "port": DEFAULT_IDENT_PORT,
                "read_timeout": DEFAULT_READ_TIMEOUT,
                "max_line_length": DEFAULT_MAX_LINE_LENGTH,
            },
            "logging": {
                "log_dir": None,
                "level": "INFO",
                "json": True,
            },
            "registry": {
                "connections": [],
            },
        }

    def _save_config(self, ident_data):
        """Save ident configuration to file."""
        ident_path = self.config_dir / "ident.yml"
        with open(ident_path, "w") as f:
            yaml.dump(ident_data, f, default_flow_style=False)
        print(f"[INFO] Created default ident config at {ident_path}")
