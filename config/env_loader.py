from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

from dotenv import dotenv_values, load_dotenv


def load_env(path: str | Path = ".env", override: bool = True) -> Dict[str, str]:
    """
    Load KEY=VALUE pairs from a .env file into os.environ.

    Returns a dict of keys loaded; empty if the file does not exist.
    """
    p = Path(path)
    if not p.exists():
        return {}
    load_dotenv(p, override=override)
    loaded = {k: v for k, v in dotenv_values(p).items() if v is not None}

    # Alias mapping for OpenAI-compatible gateways
    if "OPENAI_API_KEY" not in os.environ and "MOONSHOT_API_KEY" in os.environ:
        os.environ["OPENAI_API_KEY"] = os.environ["MOONSHOT_API_KEY"]
        loaded["OPENAI_API_KEY"] = os.environ["MOONSHOT_API_KEY"]
    return loaded
