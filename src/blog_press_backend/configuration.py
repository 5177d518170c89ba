from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from .imaging import MAX_HEIGHT, MAX_WIDTH, OUTPUT_EFFORT, OUTPUT_FORMAT, OUTPUT_QUALITY
from .ingestion import MAX_UPLOAD_BYTES
from .models import UploadLimits

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [_HERE.parent / "config/config.yaml"]

if os.environ.get("BLOG_CONFIG_PATH"):
    _CANDIDATE_CONFIG_PATHS.insert(0, Path(os.environ["BLOG_CONFIG_PATH"]))

CONFIG_PATH = next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)
if CONFIG_PATH is None:  # pragma: no cover - fail fast in misconfigured environments
    raise FileNotFoundError("config.yaml could not be located; set BLOG_CONFIG_PATH or reinstall the package.")


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


@lru_cache(maxsize=1)
def get_config() -> DictConfig:
    """
    Load the runtime configuration with environment overrides resolved.

    ``.env`` is read first so its values feed the ``oc.env`` interpolations.
    """
    load_dotenv()
    container = OmegaConf.to_container(_load_default_config(), resolve=True)
    config = OmegaConf.create(container)
    OmegaConf.set_struct(config, True)
    return config


def make_runtime_config(overrides: Dict[str, Any]) -> DictConfig:
    base = OmegaConf.create(OmegaConf.to_container(get_config(), resolve=True))
    OmegaConf.set_struct(base, True)
    merged = DictConfig(OmegaConf.merge(base, OmegaConf.create(overrides)))
    return merged


def build_upload_limits() -> UploadLimits:
    return UploadLimits(
        max_upload_bytes=MAX_UPLOAD_BYTES,
        max_width=MAX_WIDTH,
        max_height=MAX_HEIGHT,
        output_format=OUTPUT_FORMAT.lower(),
        output_quality=OUTPUT_QUALITY,
        output_effort=OUTPUT_EFFORT,
    )
