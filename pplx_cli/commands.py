"""Command handlers: each takes the AppContext and the parsed argparse namespace."""
import datetime, logging, pathlib, sys
from typing import Any, Dict, List

from . import research
from .client import RESEARCH_MODEL, get_research, submit_research, to_dict
from .config import VALID_DEFAULTS, mask_key, parse_default
from .errors import UsageError, exit_no_api_key
from .history import updated_ms
from .options import resolve_query_options, resolve_research_options, resolve_search_options
from .query import create_completion, execute_query

logger = logging.getLogger(__name__)

SEARCH_SYSTEM_PROMPT = "Provide concise search results with sources."

MODELS: Dict[str, Dict[str, str]] = {
    "sonar": {
        "name": "sonar", "type": "Search",
        "description": "Lightweight search with real-time web grounding",
        "pricing": "$1 / $1 per 1M tokens",
    },
    "sonar-pro": {
        "name": "sonar-pro", "type": "Search",
        "description": "Advanced search for complex queries, 2x citations",
        "pricing": "$3 / $15 per 1M tokens",
    },
    "sonar-reasoning-pro": {
        "name": "sonar-reasoning-pro", "type": "Reasoning",
        "description": "Chain of Thought reasoning (DeepSeek-R1)",
        "pricing": "Premium tier",
    },
    "sonar-deep-research": {
        "name": "sonar-deep-research", "type": "Research",
        "description": "Expert-level research with exhaustive web analysis",
        "pricing": "Premium tier",
    },
}


def _client(ctx):
    key = ctx.api_key()
    if not key:
        exit_no_api_key(ctx.console)
    return ctx.client(key)


def _fmt_ms(ms: int) -> str:
    return datetime.datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _fmt_epoch(seconds: Any) -> str:
    return datetime.datetime.fromtimestamp(float(seconds)).strftime("%Y-%m-%d %H:%M:%S")


def _preview(text: str, n: int) -> str:
    return text[:n] + ("..." if len(text) > n else "")


# ========= query / search =========
def cmd_query(ctx, args):
    opts = resolve_query_options(args, ctx.settings)
    question = " ".join(args.question) if isinstance(args.question, list) else args.question
    execute_query(ctx, _client(ctx), question, opts)


def cmd_search(ctx, args):
    opts = resolve_search_options(args, ctx.settings)
    client = _client(ctx)
    con = ctx.console
    params: Dict[str, Any] = {
        "model": "sonar",
        "messages": [
            {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
            {"role": "user", "content": " ".join(args.query)},
        ],
        "num_search_results": opts.max_results,
        "return_related_questions": True,
    }
    if opts.mode: params["search_mode"] = opts.mode
    if opts.recency: params["search_recency_filter"] = opts.recency
    if opts.domain: params["search_domain_filter"] = list(opts.domain)

    completion = create_completion(client, params, stream=False)
    if opts.json:
        con.json(to_dict(completion))
        return

    content = completion.choices[0].message.content if completion.choices else None
    if isinstance(content, str):
        con.print(content, "white")

    results = getattr(completion, "search_results", None) or []
    citations = getattr(completion, "citations", None) or []
    if results:
        con.print()
        con.header("Search Results:\n")
        for i, r in enumerate(results, 1):
            con.fragments([("", "  "), (con.style("cyan"), f"[{i}]"), ("", " "),
                           (con.style("white"), r.get("title") or "")])
            con.print(f"      {r.get('url', '')}", "blue")
            if r.get("snippet"):
                con.print(f"      {r['snippet'][:150]}", "gray")
            con.print()
    elif citations:
        con.print()
        con.header("Sources:\n")
        for i, url in enumerate(citations, 1):
            con.fragments([("", "  "), (con.style("cyan"), f"[{i}]"), ("", " "), (con.style("blue"), url)])
        con.print()


# ========= research =========
def _print_report(ctx, job: Dict[str, Any], as_json: bool, output: str = None) -> str:
    con = ctx.console
    text = research.report_text(job)
    response = job.get("response") or {}
    if as_json:
        con.json(job)
    else:
        con.header("Research Report:\n")
        con.print(text, "white")
        con.sources(response.get("citations"), response.get("search_results"))
    if output:
        pathlib.Path(output).write_text(text, encoding="utf-8")
        con.success(f"Report saved to {output}")
    return text


def _progress(elapsed: float) -> None:
    if sys.stderr.isatty():
        sys.stderr.write(f"\rResearching... ({int(elapsed)}s elapsed)")
        sys.stderr.flush()


def cmd_research_start(ctx, args):
    opts = resolve_research_options(args)
    client = _client(ctx)
    con = ctx.console
    topic = " ".join(args.topic)

    job = submit_research(client, topic)
    rid = job["id"]
    logger.debug("Research job %s submitted with status %s", rid, job.get("status"))
    con.label("Research ID:", rid, indent="")
    con.print(f"Status: {job.get('status', '')}", "gray")

    if not opts.wait:
        con.print()
        con.fragments([(con.style("gray"), "Check status with: "), ("", f"pplx research status {rid}")])
        con.fragments([(con.style("gray"), "Get result with: "), ("", f"pplx research get {rid}")])
        return

    con.print()
    result = research.poll_job(lambda r: get_research(client, r), rid,
                               interval=opts.poll_interval, timeout=opts.timeout * 60,
                               on_tick=_progress)
    if sys.stderr.isatty():
        sys.stderr.write("\n")

    if result.state is research.JobState.COMPLETED:
        if not (result.job or {}).get("response"):
            con.warning("Research completed but no response returned.")
            return
        text = _print_report(ctx, result.job, opts.json, opts.output)
        citations = result.job["response"].get("citations")
        ctx.history.append(topic, RESEARCH_MODEL, text, len(citations) if citations is not None else None)
    elif result.state is research.JobState.FAILED:
        con.error("Research failed.")
        if result.job.get("error_message"):
            con.print(result.job["error_message"], "gray", err=True)
        sys.exit(1)
    else:
        con.warning(f"Research timed out after {opts.timeout} minutes.")
        con.print(f"Check status later with: pplx research status {rid}", "gray")


def cmd_research_status(ctx, args):
    job = get_research(_client(ctx), args.request_id)
    con = ctx.console
    con.header("Research Status:")
    con.label("ID:", str(job.get("id", args.request_id)), color="white")
    con.label("Status:", str(job.get("status", "")))
    if job.get("created_at"):
        con.label("Created:", _fmt_epoch(job["created_at"]), color="white")
    if job.get("completed_at"):
        con.label("Completed:", _fmt_epoch(job["completed_at"]), color="white")


def cmd_research_get(ctx, args):
    job = get_research(_client(ctx), args.request_id)
    con = ctx.console
    if research.job_state(job) is not research.JobState.COMPLETED:
        con.warning(f"Research is not yet complete. Status: {job.get('status')}")
        return
    if not job.get("response"):
        con.warning("No response data available.")
        return
    _print_report(ctx, job, args.json, args.output)


# ========= history / models =========
def _print_threads(ctx, as_json: bool):
    con = ctx.console
    threads = ctx.threads.list_all()
    if not threads:
        con.warning("No conversation threads found.")
        return
    if as_json:
        con.json(threads)
        return
    con.header("Conversation Threads:\n")
    for t in threads:
        msgs: List[Dict[str, str]] = t["messages"] if isinstance(t.get("messages"), list) else []
        first = next((m for m in msgs if isinstance(m, dict) and m.get("role") == "user"), None)
        con.print(f"  {t['id'][:8]}", "yellow")
        con.print(f"  {_preview(str(first.get('content', '')), 80) if first else '(empty)'}", "white")
        con.print(f"  {_fmt_ms(updated_ms(t))} | {t.get('model', '?')} | {len(msgs)} messages", "gray")
        con.print()
    con.print('Continue a thread with: pplx query "question" --thread <id>', "gray")


def cmd_history(ctx, args):
    con = ctx.console
    if args.clear:
        ctx.history.clear()
        ctx.threads.clear_all()
        con.success("History and threads cleared.")
        return
    if args.threads:
        _print_threads(ctx, args.json)
        return

    entries = ctx.history.list()
    if not entries:
        con.warning("No query history found.")
        return
    entries = entries[:args.limit if args.limit and args.limit > 0 else 20]
    if args.json:
        con.json(entries)
        return
    con.header("Recent Queries:\n")
    for e in entries:
        con.print(f"  {e.get('question', '')}", "white")
        meta = [_fmt_ms(e.get("timestamp", 0)), e.get("model", "?")]
        if e.get("citations"):
            meta.append(f"{e['citations']} sources")
        con.print(f"  {' | '.join(meta)}", "gray")
        if e.get("responsePreview"):
            con.print(f"  {_preview(e['responsePreview'], 100)}", "gray")
        con.print()


def cmd_models(ctx, args):
    con = ctx.console
    if args.json:
        con.json(MODELS)
        return
    con.header("Available Perplexity Models:\n")
    current = ""
    for m in MODELS.values():
        if m["type"] != current:
            if current: con.print()
            con.header(f"  {m['type']} Models:")
            current = m["type"]
        con.fragments([("", "    "), (con.style("yellow"), m["name"].ljust(24)), ("", " "),
                       (con.style("gray"), m["description"])])
        con.print(f"    {'':24} {m['pricing']}", "gray")
    con.print()
    con.print('  Use with: pplx query "question" --model <model-name>', "gray")


# ========= config =========
def cmd_config_set_key(ctx, args):
    cfg = ctx.settings.load()
    cfg["apiKey"] = args.key
    ctx.settings.save(cfg)
    ctx.reset()
    ctx.console.success("API key set successfully.")


def cmd_config_view_key(ctx, args):
    key = ctx.settings.load().get("apiKey")
    if not key:
        raise UsageError("No API key set. Run: pplx config set-key <key>")
    ctx.console.fragments([(ctx.console.style("blue"), "API key: "), (ctx.console.style("yellow"), mask_key(key))])


def cmd_config_clear_key(ctx, args):
    cfg = ctx.settings.load()
    cfg.pop("apiKey", None)
    ctx.settings.save(cfg)
    ctx.reset()
    ctx.console.success("API key cleared.")


def cmd_config_set(ctx, args):
    try:
        value = parse_default(args.key, args.value)
    except ValueError as e:
        raise UsageError(f"{e}. Valid keys: {', '.join(VALID_DEFAULTS)}") from None
    cfg = ctx.settings.load()
    if not isinstance(cfg.get("defaults"), dict):
        cfg["defaults"] = {}
    cfg["defaults"][args.key] = value
    ctx.settings.save(cfg)
    ctx.console.success(f"Set {args.key} = {args.value}")


def cmd_config_get(ctx, args):
    cfg = ctx.settings.load()
    if args.key == "apiKey":
        ctx.console.print("(set)" if cfg.get("apiKey") else "(not set)")
        return
    val = ctx.settings.defaults().get(args.key)
    if val is None:
        ctx.console.print("(not set)", "gray")
    else:
        ctx.console.print(str(val).lower() if isinstance(val, bool) else str(val))


def cmd_config_list(ctx, args):
    con = ctx.console
    cfg = ctx.settings.load()
    con.header("Configuration:")
    con.label("API key:", "set" if cfg.get("apiKey") else "not set", color="green" if cfg.get("apiKey") else "red")
    con.label("Config path:", str(ctx.config_dir), color="gray")
    defaults = ctx.settings.defaults()
    if defaults:
        con.print()
        con.header("Defaults:")
        for k, v in defaults.items():
            con.label(f"{k}:", str(v).lower() if isinstance(v, bool) else str(v))


def cmd_config_path(ctx, args):
    ctx.console.print(str(ctx.config_dir))
