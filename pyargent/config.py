"""Network settings and persisted per-network deployment configuration.

Settings come from the environment, optionally seeded from a ``.env`` file.
Deployed addresses live in ``config/<network>.json``.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

LOCAL_NETWORK = "local"
DEFAULT_CONFIG_DIR = Path("config")

CONFIG_KEYS = (
    "escapeSecurityPeriodInSeconds",
    "implementation",
    "factory",
    "dummyAccount",
    "testDapp",
    "paymaster",
)


@dataclass(frozen=True)
class Settings:
    network: str
    rpc_url: Optional[str]
    private_key: Optional[str]

    @property
    def is_local(self) -> bool:
        return self.network == LOCAL_NETWORK


def load_settings(dotenv_path: Optional[Union[str, Path]] = None) -> Settings:
    """Read ``ARGENT_NETWORK``, ``RPC_URL`` and ``PRIVATE_KEY``; a ``.env`` never overrides the environment."""
    load_dotenv(dotenv_path)
    return Settings(
        network=os.getenv("ARGENT_NETWORK", LOCAL_NETWORK),
        rpc_url=os.getenv("RPC_URL") or None,
        private_key=os.getenv("PRIVATE_KEY") or None,
    )


def config_path(network: str, config_dir: Union[str, Path] = DEFAULT_CONFIG_DIR) -> Path:
    return Path(config_dir) / f"{network}.json"


def load_config(network: str, config_dir: Union[str, Path] = DEFAULT_CONFIG_DIR) -> dict:
    """
    Load the deployment configuration of ``network``.

    Raises:
        ConfigError: If the file is missing or is not a JSON object
    """
    path = config_path(network, config_dir)
    try:
        with open(path, encoding="utf-8") as f:
            config = json.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"No config for network {network} ({path})") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid config for network {network}: {exc}") from exc
    if not isinstance(config, dict):
        raise ConfigError(f"Invalid config for network {network}: expected a JSON object")
    return config


def save_config(
    network: str, updates: dict, config_dir: Union[str, Path] = DEFAULT_CONFIG_DIR
) -> Optional[dict]:
    """
    Merge ``updates`` into the stored configuration and write it back.

    The local network is redeployed on every run, so nothing is saved for it.

    Returns:
        The merged configuration, or None on the local network
    """
    if network == LOCAL_NETWORK:
        return None
    unknown = set(updates) - set(CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")

    path = config_path(network, config_dir)
    merged = {**load_config(network, config_dir), **updates}

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{network}.", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(merged, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except BaseException:
        os.unlink(tmp_path)
        raise
    logger.info("Saved %s to %s", ", ".join(sorted(updates)), path)
    return merged
