# config/rules/loader.py
import json, os, functools

BASE_DIR = os.path.dirname(__file__)

@functools.lru_cache(maxsize=None)
def _read_json(name):
    path = os.path.join(BASE_DIR, name)
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, ValueError):
        return None

def load_json(name, default=None):
    """Rule file contents, or `default` ({} if not given) when missing or invalid."""
    data = _read_json(name)
    if data is None:
        return default if default is not None else {}
    return data
