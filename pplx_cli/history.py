"""Local query history and conversation threads."""
import logging, pathlib, time, uuid
from typing import Any, Callable, Dict, List, Optional

from .jsonfile import read_json, write_json

logger = logging.getLogger(__name__)

MAX_HISTORY = 100
MAX_THREADS = 50
PREVIEW_LENGTH = 200

Message = Dict[str, str]
Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


def valid_thread_id(tid: Any) -> bool:
    """Thread ids name a file directly under threads/."""
    return (isinstance(tid, str) and bool(tid) and "/" not in tid
            and "\\" not in tid and ".." not in tid)


def updated_ms(obj: Dict[str, Any]) -> float:
    # hand-edited files may carry anything here
    value = obj.get("updated")
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


class HistoryStore:
    """Newest-first list of past queries in history.json."""

    def __init__(self, config_dir: pathlib.Path, clock: Clock = now_ms):
        self.path = config_dir / "history.json"
        self.clock = clock

    def list(self) -> List[Dict[str, Any]]:
        data = read_json(self.path, [])
        return data if isinstance(data, list) else []

    def append(self, question: str, model: str,
               response_text: Optional[str] = None,
               citation_count: Optional[int] = None) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "question": question,
            "model": model,
            "timestamp": self.clock(),
        }
        if response_text:
            entry["responsePreview"] = response_text[:PREVIEW_LENGTH]
        if citation_count is not None:
            entry["citations"] = citation_count
        entries = [entry] + self.list()
        write_json(self.path, entries[:MAX_HISTORY])
        return entry

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class ThreadStore:
    """One JSON file per conversation under threads/, capped at MAX_THREADS."""

    def __init__(self, config_dir: pathlib.Path, clock: Clock = now_ms):
        self.dir = config_dir / "threads"
        self.clock = clock

    def tpath(self, tid: str) -> pathlib.Path:
        if not valid_thread_id(tid):
            raise ValueError(f"Invalid thread id: {tid!r}")
        return self.dir / f"{tid}.json"

    def _read_all(self) -> List[Dict[str, Any]]:
        if not self.dir.is_dir():
            return []
        threads = []
        for f in self.dir.glob("*.json"):
            obj = read_json(f)
            if not isinstance(obj, dict) or not valid_thread_id(obj.get("id")):
                logger.debug("Skipping unreadable thread file %s", f)
                continue
            threads.append(obj)
        return threads

    def get(self, tid: str) -> Optional[Dict[str, Any]]:
        obj = read_json(self.tpath(tid))
        return obj if isinstance(obj, dict) else None

    def create(self, model: str) -> str:
        tid = str(uuid.uuid4())
        now = self.clock()
        write_json(self.tpath(tid), {"id": tid, "created": now, "updated": now, "model": model, "messages": []})
        self._prune()
        return tid

    def save(self, tid: str, model: str, messages: List[Message]) -> None:
        existing = self.get(tid)
        now = self.clock()
        created = existing.get("created", now) if existing else now
        write_json(self.tpath(tid), {
            "id": tid,
            "created": created,
            "updated": now,
            "model": model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        })

    def latest(self) -> Optional[str]:
        best: Optional[Dict[str, Any]] = None
        for obj in self._read_all():
            if best is None or updated_ms(obj) > updated_ms(best):
                best = obj
        return best["id"] if best else None

    def list_all(self) -> List[Dict[str, Any]]:
        return sorted(self._read_all(), key=updated_ms, reverse=True)

    def _prune(self) -> None:
        threads = self.list_all()
        for obj in threads[MAX_THREADS:]:
            logger.debug("Pruning thread %s", obj["id"])
            self.tpath(obj["id"]).unlink(missing_ok=True)

    def clear_all(self) -> None:
        if not self.dir.is_dir():
            return
        for f in self.dir.glob("*.json"):
            f.unlink(missing_ok=True)
