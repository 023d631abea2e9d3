"""Plugin configuration service - manages the host's plugins/config.json."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

logger = logging.getLogger(__name__)


class PluginConfigService:
    """Manages the host configuration file.

    Config format:
    {
        "trusted": ["com.acme.camera.CameraProvider"],
        "strict": false,
        "hooks": {"fail_on_error": true, "timeout": 300},
        "android": {"glue_package": "com.example.app.plugins"},
        "ios": {"usage_descriptions": {"camera": "Scan receipts"}}
    }

    The "trusted" list is the allowlist of provider identities. A file
    without a "trusted" key offers no allowlist at all, which discovery
    treats as "trust nothing".
    """

    def __init__(self, config_file: Path):
        self.config_file = config_file
        self._config: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """Load config from file, empty if not found."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return data
                logger.error(f"Plugin config {self.config_file} is not a JSON object, ignoring it")
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading plugin config: {e}")

        return {}

    def _save(self) -> None:
        """Save config to file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved plugin config to {self.config_file}")

    def allowlist(self) -> Optional[FrozenSet[str]]:
        """Trusted provider identities, or None when no allowlist is configured."""
        trusted = self._config.get("trusted")
        if trusted is None:
            return None
        return frozenset(trusted)

    def is_trusted(self, provider: str) -> bool:
        """Check if a provider identity is on the allowlist."""
        return provider in self._config.get("trusted", [])

    def get_trusted_list(self) -> List[str]:
        """Get list of trusted provider identities."""
        return list(self._config.get("trusted", []))

    def trust(self, provider: str) -> None:
        """Add a provider identity to the allowlist."""
        trusted = self._config.setdefault("trusted", [])
        if provider not in trusted:
            trusted.append(provider)
            self._save()
            logger.info(f"Trusted plugin provider: {provider}")

    def untrust(self, provider: str) -> None:
        """Remove a provider identity from the allowlist."""
        trusted = self._config.get("trusted", [])
        if provider in trusted:
            trusted.remove(provider)
            self._save()
            logger.info(f"Untrusted plugin provider: {provider}")

    @property
    def strict(self) -> bool:
        """Whether malformed manifests and unresolvable hooks abort the run."""
        return bool(self._config.get("strict", False))

    def settings(self, section: str) -> Dict[str, Any]:
        """Get a settings section such as 'hooks' or 'android'."""
        value = self._config.get(section, {})
        return dict(value) if isinstance(value, dict) else {}

    def reload(self) -> None:
        """Reload config from disk."""
        self._config = self._load()
