"""
Settings for the sync engine.  Values come from a JSON or YAML file and
can be overridden by DAVSYNC_* environment variables, i.e.
DAVSYNC_TIMEOUT=10 or DAVSYNC_DATABASE_URL=postgresql://...
"""
import json
import logging
import os
from dataclasses import dataclass
from dataclasses import fields
from typing import Any
from typing import Dict
from typing import Optional

import yaml

from davsync.store import DEFAULT_DATABASE_URL

log = logging.getLogger(__name__)


@dataclass
class SyncSettings:
    database_url: str = DEFAULT_DATABASE_URL
    ## seconds per HTTP request
    timeout: float = 30.0
    window_past_days: int = 1
    window_future_days: int = 30
    ## collections within one home URL queried in parallel; 1 is sequential
    max_workers: int = 1
    verify_ssl: bool = True
    prune_stale: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncSettings":
        known = {f.name: f for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            key = key.replace("-", "_")
            if key not in known:
                log.warning(f"unknown setting {key} ignored")
                continue
            kwargs[key] = _coerce(value, type(getattr(cls, key)))
        return cls(**kwargs)


def _coerce(value: Any, target: type) -> Any:
    if target is bool and isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    try:
        return target(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid value {value!r}, expected {target.__name__}")


def read_config(fn: Optional[str] = None) -> Dict[str, Any]:
    """
    Read a config file.  JSON is tried first, then YAML.

    Without a filename, the usual locations are searched and the first
    config file found is used.  Returns {} if there is nothing to read.
    """
    if not fn:
        cfgdir = f"{os.environ.get('HOME', '/')}/.config/"
        for config_file in (
            f"{cfgdir}/davsync/davsync.conf",
            f"{cfgdir}/davsync/davsync.yaml",
            f"{cfgdir}/davsync/davsync.json",
            "/etc/davsync.conf",
            "/etc/davsync/davsync.conf",
        ):
            cfg = read_config(config_file)
            if cfg:
                return cfg
        return {}

    try:
        with open(fn, "rb") as config_file:
            raw = config_file.read()
    except FileNotFoundError:
        log.debug(f"no config file {fn}")
        return {}

    try:
        cfg = json.loads(raw)
    except ValueError:
        try:
            cfg = yaml.safe_load(raw)
        except yaml.YAMLError:
            log.error(
                f"config file {fn} exists but is neither valid json nor yaml.  Check the syntax.",
                exc_info=True,
            )
            return {}
    ## a list or a bare scalar is valid json and yaml, but no config
    if not isinstance(cfg, dict):
        log.error(f"config file {fn} does not contain a mapping, ignored")
        return {}
    return cfg


def load_settings(fn: Optional[str] = None, environment: bool = True) -> SyncSettings:
    """
    Build SyncSettings from a config file and the environment, the
    environment taking precedence.
    """
    data = dict(read_config(fn))
    if environment:
        for f in fields(SyncSettings):
            env_key = f"DAVSYNC_{f.name.upper()}"
            if env_key in os.environ:
                data[f.name] = os.environ[env_key]
    return SyncSettings.from_dict(data)
