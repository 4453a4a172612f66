import json
from functools import lru_cache
from pathlib import Path
from typing import Any

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


@lru_cache(maxsize=None)
def load_data(name: str) -> Any:
    """Parsed contents of data/<name>.json, read once per process."""
    with open(DATA_DIR / f"{name}.json", encoding="utf-8") as f:
        return json.load(f)
