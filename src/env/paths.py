# src/env/paths.py
"""
Filesystem locations for persisted credentials.

One key file under the user config directory and one encrypted-cache
directory under the user data directory, both namespaced by application id.
Platform conventions come from platformdirs; explicit roots from env.yaml
replace them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir, user_data_dir

CACHE_KEY_FILE_NAME = "cache-key.bin"


@dataclass(frozen=True)
class CachePaths:
    cache_directory: Path
    key_file_path: Path


def resolve_cache_paths(
    application_id: str,
    *,
    data_root: Optional[str] = None,
    config_root: Optional[str] = None,
) -> CachePaths:
    """Resolve the cache directory and key file for `application_id`."""
    if data_root:
        data_dir = Path(data_root) / application_id
    else:
        data_dir = Path(user_data_dir(application_id, appauthor=False))
    if config_root:
        config_dir = Path(config_root) / application_id
    else:
        config_dir = Path(user_config_dir(application_id, appauthor=False))
    return CachePaths(
        cache_directory=data_dir,
        key_file_path=config_dir / CACHE_KEY_FILE_NAME,
    )
