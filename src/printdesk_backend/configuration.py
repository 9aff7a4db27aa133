from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

load_dotenv()

DEFAULTS: Dict[str, Any] = {
    "database": {
        "path": "data/printdesk.db",
    },
    "storage": {
        "bucket": "",
        "region": None,
        # Initial and lazily renewed URLs stay valid for a day.
        "url_ttl_seconds": 60 * 60 * 24,
        # Completed jobs get a short grace window before references go stale.
        "completion_url_ttl_seconds": 60 * 5,
        "stale_after_seconds": 60 * 60 * 12,
    },
    "intake": {
        "max_file_bytes": 10 * 1024 * 1024,
    },
    "engine": {
        "max_workers": 4,
    },
    "cors": {
        "allow_origins": ["*"],
    },
}

# Environment variable -> dotted config key
ENV_OVERRIDES: Dict[str, str] = {
    "PRINTDESK_DB_PATH": "database.path",
    "S3_BUCKET_NAME": "storage.bucket",
    "AWS_REGION": "storage.region",
}


def _env_config() -> DictConfig:
    config = OmegaConf.create({})
    for env_name, dotted_key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            OmegaConf.update(config, dotted_key, value)
    return config


def make_settings(overrides: Dict[str, Any] | None = None, config_path: Path | None = None) -> DictConfig:
    base = OmegaConf.create(DEFAULTS)
    OmegaConf.set_struct(base, True)

    layers = [base]
    path = config_path or (Path(os.environ["PRINTDESK_CONFIG"]) if os.environ.get("PRINTDESK_CONFIG") else None)
    if path is not None:
        if not path.exists():
            raise FileNotFoundError(f"Config file not found at {path}")
        layers.append(OmegaConf.load(path))
    layers.append(_env_config())
    if overrides:
        layers.append(OmegaConf.create(overrides))

    return DictConfig(OmegaConf.merge(*layers))


@lru_cache(maxsize=1)
def get_settings() -> DictConfig:
    return make_settings()
