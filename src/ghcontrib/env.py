from __future__ import annotations

import os
from pathlib import Path


def load_dotenv(*paths: str | Path, override: bool = False) -> list[str]:
    """
    Load local .env files into os.environ, first file wins.

    - Meant for keeping GITHUB_TOKEN out of shell history; never logs values.
    - Only KEY=value lines (optionally prefixed with ``export``) are read.
    - Returns the names of the variables that were set.
    """
    if not paths:
        paths = (".env",)

    loaded: list[str] = []
    for path in paths:
        env_path = Path(path)
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export ") :].lstrip()
            if "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip()
            if not key:
                continue

            if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                value = value[1:-1]

            if key in os.environ and (not override or key in loaded):
                continue
            os.environ[key] = value
            loaded.append(key)

    return loaded
