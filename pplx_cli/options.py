"""Per-invocation option records merged from CLI flags and stored defaults."""
import argparse
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .config import SettingsStore

DEFAULT_POLL_INTERVAL = 10
DEFAULT_TIMEOUT_MINUTES = 30
DEFAULT_MAX_RESULTS = 10


def pick(flag: Any, default: Any = None, fallback: Any = None) -> Any:
    """First of flag, stored default, fallback that is not None.

    A flag explicitly set to False still wins over a stored True.
    """
    if flag is not None:
        return flag
    if default is not None:
        return default
    return fallback


def _positive_int(value: Any, fallback: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return fallback
    return n if n > 0 else fallback


@dataclass(frozen=True)
class QueryOptions:
    model: str
    stream: bool = True
    output: Optional[str] = None
    search_mode: Optional[str] = None
    recency: Optional[str] = None
    after: Optional[str] = None
    before: Optional[str] = None
    domain: Tuple[str, ...] = ()
    exclude_domain: Tuple[str, ...] = ()
    images: bool = False
    related: bool = False
    reasoning: Optional[str] = None
    context_size: Optional[str] = None
    language: Optional[str] = None
    system: Optional[str] = None
    json: bool = False
    citations: bool = True
    search: bool = True
    safe_search: bool = False
    raw: bool = False
    continue_: bool = False
    thread: Optional[str] = None


@dataclass(frozen=True)
class SearchOptions:
    max_results: int = DEFAULT_MAX_RESULTS
    mode: Optional[str] = None
    recency: Optional[str] = None
    domain: Tuple[str, ...] = ()
    json: bool = False


@dataclass(frozen=True)
class ResearchOptions:
    poll_interval: int = DEFAULT_POLL_INTERVAL
    timeout: int = DEFAULT_TIMEOUT_MINUTES
    wait: bool = True
    output: Optional[str] = None
    json: bool = False


def resolve_query_options(args: argparse.Namespace, settings: SettingsStore) -> QueryOptions:
    defaults: Dict[str, Any] = settings.defaults()
    get = lambda name: getattr(args, name, None)
    return QueryOptions(
        model=settings.resolve_model(get("model")),
        stream=bool(pick(get("stream"), defaults.get("stream"), True)),
        output=get("output"),
        search_mode=pick(get("search_mode"), defaults.get("searchMode")),
        recency=get("recency"),
        after=get("after"),
        before=get("before"),
        domain=tuple(get("domain") or ()),
        exclude_domain=tuple(get("exclude_domain") or ()),
        images=bool(get("images")),
        related=bool(get("related")),
        reasoning=get("reasoning"),
        context_size=pick(get("context_size"), defaults.get("contextSize")),
        language=pick(get("language"), defaults.get("language")),
        system=get("system"),
        json=bool(get("json")),
        citations=pick(get("citations"), None, True),
        search=pick(get("search"), None, True),
        safe_search=bool(pick(get("safe_search"), defaults.get("safeSearch"), False)),
        raw=bool(get("raw")),
        continue_=bool(get("continue_")),
        thread=get("thread"),
    )


def resolve_search_options(args: argparse.Namespace, settings: SettingsStore) -> SearchOptions:
    defaults = settings.defaults()
    return SearchOptions(
        max_results=_positive_int(getattr(args, "max_results", None), DEFAULT_MAX_RESULTS),
        mode=pick(getattr(args, "mode", None), defaults.get("searchMode")),
        recency=getattr(args, "recency", None),
        domain=tuple(getattr(args, "domain", None) or ()),
        json=bool(getattr(args, "json", False)),
    )


def resolve_research_options(args: argparse.Namespace) -> ResearchOptions:
    return ResearchOptions(
        poll_interval=_positive_int(getattr(args, "poll_interval", None), DEFAULT_POLL_INTERVAL),
        timeout=_positive_int(getattr(args, "timeout", None), DEFAULT_TIMEOUT_MINUTES),
        wait=pick(getattr(args, "wait", None), None, True),
        output=getattr(args, "output", None),
        json=bool(getattr(args, "json", False)),
    )
