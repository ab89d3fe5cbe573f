from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

from dotenv import dotenv_values


def load_env(path: str | Path) -> Dict[str, str]:
    """
    Load KEY=VALUE pairs from a .env file into os.environ.
    - Missing files load nothing
    - Keys without a value are skipped
    Returns a dict of keys loaded.
    """
    p = Path(path)
    loaded: Dict[str, str] = {}
    if not p.exists():
        return loaded
    for key, val in dotenv_values(p).items():
        if val is None:
            continue
        os.environ[key] = val
        loaded[key] = val

    # Legacy alias: SURVEILLANCE_CONFIG -> SURVEILLANCE_CONFIG_PATH if missing
    if 'SURVEILLANCE_CONFIG_PATH' not in os.environ and 'SURVEILLANCE_CONFIG' in os.environ:
        os.environ['SURVEILLANCE_CONFIG_PATH'] = os.environ['SURVEILLANCE_CONFIG']
        loaded['SURVEILLANCE_CONFIG_PATH'] = os.environ['SURVEILLANCE_CONFIG']
    return loaded
