"""Chat-completion queries, optionally continuing a saved thread."""
import logging, pathlib
from typing import Any, Dict, List, Optional, Tuple

from .client import to_dict
from .errors import UsageError
from .history import valid_thread_id
from .options import QueryOptions

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "Be precise and concise."
STANDARD_PARAMS = ("model", "messages")

Message = Dict[str, str]


def build_messages(question: str, system_prompt: str,
                   thread_messages: Optional[List[Message]] = None) -> List[Message]:
    msgs = [{"role": "system", "content": system_prompt}]
    msgs += [{"role": m["role"], "content": m["content"]} for m in thread_messages or []]
    msgs.append({"role": "user", "content": question})
    return msgs


def domain_filter(domains, excluded) -> List[str]:
    """Included domains as-is, excluded ones prefixed with '-'."""
    return list(domains or []) + [f"-{d}" for d in excluded or []]


def build_params(messages: List[Message], opts: QueryOptions) -> Dict[str, Any]:
    params: Dict[str, Any] = {"model": opts.model, "messages": messages}
    if opts.search_mode: params["search_mode"] = opts.search_mode
    if opts.recency: params["search_recency_filter"] = opts.recency
    if opts.after: params["search_after_date_filter"] = opts.after
    if opts.before: params["search_before_date_filter"] = opts.before
    filters = domain_filter(opts.domain, opts.exclude_domain)
    if filters: params["search_domain_filter"] = filters
    if opts.images: params["return_images"] = True
    if opts.related: params["return_related_questions"] = True
    if opts.reasoning: params["reasoning_effort"] = opts.reasoning
    if opts.language: params["search_language_filter"] = [opts.language]
    if not opts.search: params["disable_search"] = True
    if opts.safe_search: params["safe_search"] = True
    if opts.context_size:
        params["web_search_options"] = {"search_context_size": opts.context_size}
    return params


def create_completion(client, params: Dict[str, Any], stream: bool):
    """Send params through the SDK; Perplexity-only fields travel in extra_body."""
    extra = {k: v for k, v in params.items() if k not in STANDARD_PARAMS}
    logger.debug("chat.completions.create model=%s stream=%s extra=%s", params["model"], stream, extra)
    kw: Dict[str, Any] = {"model": params["model"], "messages": params["messages"], "stream": stream}
    if extra:
        kw["extra_body"] = extra
    return client.chat.completions.create(**kw)


def _thread_messages(thread: Dict[str, Any]) -> List[Message]:
    msgs = thread.get("messages")
    return msgs if isinstance(msgs, list) else []


def select_thread(ctx, opts: QueryOptions) -> Tuple[Optional[str], Optional[List[Message]]]:
    if opts.continue_:
        tid = ctx.threads.latest()
        thread = ctx.threads.get(tid) if tid else None
        return tid, (_thread_messages(thread) if thread else None)
    if opts.thread:
        if not valid_thread_id(opts.thread):
            raise UsageError(f"Invalid thread id: {opts.thread}")
        thread = ctx.threads.get(opts.thread)
        if thread is None:
            raise UsageError(f"Thread not found: {opts.thread}")
        return opts.thread, _thread_messages(thread)
    return None, None


def _message_text(choice) -> str:
    content = getattr(getattr(choice, "message", None), "content", None)
    return content if isinstance(content, str) else ""


META_FIELDS = ("citations", "search_results", "related_questions", "images")


def response_meta(obj, into: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Perplexity extras riding on a completion or chunk; later non-empty values win.

    A field the API never sent stays None, so an empty citation list can be
    told apart from a missing one.
    """
    meta = into if into is not None else dict.fromkeys(META_FIELDS)
    for f in META_FIELDS:
        value = getattr(obj, f, None)
        if value is not None and (value or meta[f] is None):
            meta[f] = value
    return meta


def stream_response(ctx, stream, opts: QueryOptions) -> Tuple[str, Dict[str, Any]]:
    """Print chunks as they arrive and collect the trailing metadata."""
    con = ctx.console
    collected: List[str] = []
    meta = response_meta(None)
    for ev in stream:
        if ev.choices:
            delta = ev.choices[0].delta
            txt = getattr(delta, "content", None) if delta else None
            if isinstance(txt, str) and txt:
                collected.append(txt)
                if opts.raw:
                    con.raw(txt)
                else:
                    con.answer(txt, citations=opts.citations, end="")
        response_meta(ev, meta)
    con.print()
    return "".join(collected), meta


def execute_query(ctx, client, question: str, opts: QueryOptions) -> str:
    con = ctx.console
    tid, thread_messages = select_thread(ctx, opts)
    messages = build_messages(question, opts.system or DEFAULT_SYSTEM_PROMPT, thread_messages)
    params = build_params(messages, opts)
    usage = None

    if opts.stream:
        if not opts.raw:
            con.header("Streaming response:\n")
        text, meta = stream_response(ctx, create_completion(client, params, stream=True), opts)
    else:
        completion = create_completion(client, params, stream=False)
        text = _message_text(completion.choices[0]) if completion.choices else ""
        meta = response_meta(completion)
        usage = getattr(completion, "usage", None)
        if opts.json:
            con.json(to_dict(completion))
        elif opts.raw:
            con.raw(text)
        else:
            con.header("Response:\n")
            con.answer(text, citations=opts.citations)

    citations = meta["citations"]
    if not opts.json:
        if opts.citations:
            con.sources(citations, meta["search_results"])
        if opts.images:
            con.images(meta["images"])
        if opts.related:
            con.related(meta["related_questions"])
        if usage is not None and not opts.raw:
            con.usage(usage.prompt_tokens, usage.completion_tokens, usage.total_tokens)

    if opts.output:
        pathlib.Path(opts.output).write_text(text, encoding="utf-8")
        con.success(f"Response saved to {opts.output}")

    ctx.history.append(question, opts.model, text, len(citations) if citations is not None else None)

    if tid or opts.continue_:
        if not tid:
            tid = ctx.threads.create(opts.model)
        ctx.threads.save(tid, opts.model, list(thread_messages or []) + [
            {"role": "user", "content": question},
            {"role": "assistant", "content": text},
        ])
    return text
