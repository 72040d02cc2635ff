from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Dict, Any, Optional
import json
import logging
import os
import shutil
import sys

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "sshdeck"
SETTINGS_FILE = CONFIG_DIR / "settings.json"

DEFAULT_PREVIEW_BYTES = 65_536


def _which(tool: str) -> str:
    return shutil.which(tool) or f"/usr/bin/{tool}"


@dataclass
class ClientSettings:
    ssh_path: str = ""
    sftp_path: str = ""
    scp_path: str = ""
    curl_path: str = ""
    telnet_path: str = ""
    python_path: str = ""
    preview_max_bytes: int = DEFAULT_PREVIEW_BYTES

    def __post_init__(self):
        self.ssh_path = self.ssh_path or _which("ssh")
        self.sftp_path = self.sftp_path or _which("sftp")
        self.scp_path = self.scp_path or _which("scp")
        self.curl_path = self.curl_path or _which("curl")
        # telnet is optional on most systems; keep it empty when missing
        self.telnet_path = self.telnet_path or shutil.which("telnet") or ""
        self.python_path = self.python_path or sys.executable
        self.preview_max_bytes = max(1, int(self.preview_max_bytes or DEFAULT_PREVIEW_BYTES))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientSettings':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


class SettingsManager:
    def __init__(self, config_file: Optional[os.PathLike] = None):
        self.config_file = Path(config_file) if config_file else SETTINGS_FILE
        self.settings = ClientSettings()
        self.load_settings()

    def load_settings(self) -> ClientSettings:
        if not self.config_file.exists():
            return self.settings
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("settings file must contain a JSON object")
            self.settings = ClientSettings.from_dict(data)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading settings from {self.config_file}: {e}. Using defaults.")
            self.settings = ClientSettings()
        return self.settings

    def save_settings(self) -> None:
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.settings.to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Error saving settings: {e}")

    def get(self, key: str):
        self._check_key(key)
        return getattr(self.settings, key)

    def set(self, key: str, value) -> None:
        self._check_key(key)
        setattr(self.settings, key, value)

    @staticmethod
    def _check_key(key: str) -> None:
        if key not in {f.name for f in fields(ClientSettings)}:
            raise KeyError(key)
