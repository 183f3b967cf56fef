import json
import os
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict


@dataclass
class StapleCheckConfig:
    """Configuration for the staple checker"""
    # Signature validation
    allow_delegated_responder: bool = True

    # Freshness is off by default: an expired Good staple is still accepted
    check_freshness: bool = False
    max_age_hours: Optional[int] = None
    clock_skew_seconds: int = 300

    # TLS connection settings
    ca_file: str = ""
    client_cert: str = ""
    client_key: str = ""
    default_port: int = 443
    timeout_seconds: int = 10

    # Output settings
    show_debug: bool = False


class ConfigManager:
    """Manages saving and loading of configuration"""

    def __init__(self, config_file: Optional[str] = None):
        if config_file:
            self.config_file = config_file
        else:
            config_home = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
            self.config_file = os.path.join(config_home, "ocsp_staple", "config.json")
        self.config = StapleCheckConfig()

    def load_config(self) -> StapleCheckConfig:
        """Load configuration from file; a missing file leaves the defaults"""
        if not os.path.exists(self.config_file):
            return self.config

        with open(self.config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {self.config_file} must contain a JSON object")
        self.update_from_dict(data)
        return self.config

    def save_config(self, config: StapleCheckConfig) -> None:
        """Save configuration to file (atomic)"""
        config_dir = os.path.dirname(self.config_file) or "."
        os.makedirs(config_dir, exist_ok=True)

        tmp_path = self.config_file + ".tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(asdict(config), f, indent=2)
        os.replace(tmp_path, self.config_file)
        self.config = config

    def update_from_dict(self, data: Dict[str, Any]) -> None:
        """Update config from dictionary, ignoring unknown and None values"""
        for key, value in data.items():
            if value is not None and hasattr(self.config, key):
                setattr(self.config, key, value)
