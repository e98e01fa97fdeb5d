"""Tolerant JSON file helpers shared by the local stores."""
import json, logging, os, pathlib
from typing import Any

logger = logging.getLogger(__name__)


def read_json(path: pathlib.Path, default: Any = None) -> Any:
    """Parse `path`; a missing or unreadable file yields `default`."""
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Ignoring unreadable %s: %s", path, e)
        return default


def write_json(path: pathlib.Path, obj: Any) -> None:
    """Write via a sibling temp file so readers never see a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp, path)
