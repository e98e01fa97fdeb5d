"""pplx - command-line client for the Perplexity AI API.

Queries (streamed or not), web search, deep research jobs, local history and
conversation threads. `pplx "question"` is shorthand for `pplx query "question"`.
"""
import argparse, logging, os, sys
from typing import List, Optional

from . import __version__, commands
from .context import AppContext
from .errors import handle_error
from .output import colors_enabled

logger = logging.getLogger(__name__)

KNOWN_COMMANDS = {
    "query", "config", "history", "models", "search", "research",
    "set-key", "view-key", "clear-key", "help",
}
RESEARCH_SUBCOMMANDS = {"start", "status", "get"}
# research start options that consume the following token
RESEARCH_VALUE_OPTIONS = {"--poll-interval", "--timeout", "-o", "--output", "--api-key", "--color"}

SEARCH_MODES = ("web", "academic", "sec")
RECENCY = ("hour", "day", "week", "month", "year")
REASONING = ("minimal", "low", "medium", "high")
CONTEXT_SIZES = ("low", "medium", "high")


def preprocess_argv(argv: List[str]) -> List[str]:
    """Route bare questions to `query` and `research <topic>` to `research start`."""
    if argv and not argv[0].startswith("-") and argv[0] not in KNOWN_COMMANDS:
        return ["query"] + argv
    if argv and argv[0] == "research":
        first = _first_positional(argv[1:])
        if first is not None and first not in RESEARCH_SUBCOMMANDS:
            return ["research", "start"] + argv[1:]
    return list(argv)


def _first_positional(tokens: List[str]) -> Optional[str]:
    skip = False
    for tok in tokens:
        if skip:
            skip = False
        elif tok == "--":
            return None
        elif tok.startswith("-"):
            skip = tok in RESEARCH_VALUE_OPTIONS
        else:
            return tok
    return None


def _global_options(p: argparse.ArgumentParser, suppress: bool) -> None:
    d = (lambda v: argparse.SUPPRESS) if suppress else (lambda v: v)
    p.add_argument("--api-key", default=d(None), help="Override stored API key")
    p.add_argument("--verbose", action="store_true", default=d(False), help="Show debug output")
    p.add_argument("--color", choices=("auto", "force", "off"), default=d(os.environ.get("PPLX_COLOR", "auto")),
                   help="Color mode: auto|force|off (default: env PPLX_COLOR or 'auto')")
    p.add_argument("--no-color", dest="color", action="store_const", const="off", default=d(None),
                   help="Disable colored output")


def _query_options(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("-m", "--model", help="Model to use")
    sp.add_argument("-s", "--stream", action=argparse.BooleanOptionalAction, default=None,
                    help="Stream response in real-time (default: on)")
    sp.add_argument("-o", "--output", help="Save response to file")
    sp.add_argument("--search-mode", choices=SEARCH_MODES, help="Search mode: web, academic, sec")
    sp.add_argument("--recency", choices=RECENCY, help="Filter by recency")
    sp.add_argument("--after", metavar="DATE", help="Only results after date (MM/DD/YYYY)")
    sp.add_argument("--before", metavar="DATE", help="Only results before date (MM/DD/YYYY)")
    sp.add_argument("--domain", nargs="+", help="Include only these domains")
    sp.add_argument("--exclude-domain", nargs="+", help="Exclude these domains")
    sp.add_argument("--images", action="store_true", help="Include images (sonar-pro only)")
    sp.add_argument("--related", action="store_true", help="Show related questions")
    sp.add_argument("--reasoning", choices=REASONING, help="Reasoning effort")
    sp.add_argument("--context-size", choices=CONTEXT_SIZES, help="Search context size")
    sp.add_argument("--language", metavar="CODE", help="Preferred response language")
    sp.add_argument("--system", metavar="PROMPT", help="Custom system prompt")
    sp.add_argument("--json", action="store_true", help="Print the full API response as JSON (implies --no-stream)")
    sp.add_argument("--no-citations", dest="citations", action="store_false", default=None, help="Hide citations")
    sp.add_argument("--no-search", dest="search", action="store_false", default=None, help="Disable web search")
    sp.add_argument("--safe-search", action=argparse.BooleanOptionalAction, default=None,
                    help="Enable safe search filtering")
    sp.add_argument("--raw", action="store_true", help="Output raw text (no formatting)")
    sp.add_argument("-c", "--continue", dest="continue_", action="store_true", help="Continue last conversation")
    sp.add_argument("-t", "--thread", metavar="ID", help="Continue a specific thread")


def _research_options(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--poll-interval", type=int, default=10, metavar="SECONDS", help="Polling interval in seconds")
    sp.add_argument("--timeout", type=int, default=30, metavar="MINUTES", help="Max wait time in minutes")
    sp.add_argument("--no-wait", dest="wait", action="store_false", default=None,
                    help="Submit and return request ID without waiting")
    sp.add_argument("-o", "--output", help="Save result to file")
    sp.add_argument("--json", action="store_true", help="Output as JSON")


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    _global_options(common, suppress=True)

    p = argparse.ArgumentParser(prog="pplx", description="Modern CLI for the Perplexity AI API")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _global_options(p, suppress=False)
    sub = p.add_subparsers(dest="cmd")

    def add(name, func, text, parent=sub):
        sp = parent.add_parser(name, help=text, description=text, parents=[common])
        sp.set_defaults(func=func)
        return sp

    sp = add("query", commands.cmd_query, "Send a query to the Perplexity API")
    sp.add_argument("question", nargs="+")
    _query_options(sp)

    sp = add("search", commands.cmd_search, "Search the web via Perplexity")
    sp.add_argument("query", nargs="+")
    sp.add_argument("--max-results", type=int, default=10, metavar="N", help="Number of results")
    sp.add_argument("--mode", choices=SEARCH_MODES, help="Search mode: web, academic, sec")
    sp.add_argument("--recency", choices=RECENCY, help="Recency filter")
    sp.add_argument("--domain", nargs="+", help="Include only these domains")
    sp.add_argument("--json", action="store_true", help="Output as JSON")

    rp = sub.add_parser("research", help="Deep research using sonar-deep-research (async)")
    rsub = rp.add_subparsers(dest="research_cmd", required=True)
    sp = add("start", commands.cmd_research_start, "Start a deep research task", rsub)
    sp.add_argument("topic", nargs="+")
    _research_options(sp)
    sp = add("status", commands.cmd_research_status, "Check status of a research request", rsub)
    sp.add_argument("request_id")
    sp = add("get", commands.cmd_research_get, "Get result of a completed research request", rsub)
    sp.add_argument("request_id")
    sp.add_argument("-o", "--output", help="Save result to file")
    sp.add_argument("--json", action="store_true", help="Output as JSON")

    sp = add("history", commands.cmd_history, "View history of recent queries")
    sp.add_argument("--limit", type=int, default=20, metavar="N", help="Number of entries to show")
    sp.add_argument("--clear", action="store_true", help="Clear all history and threads")
    sp.add_argument("--json", action="store_true", help="Output as JSON")
    sp.add_argument("--threads", action="store_true", help="Show conversation threads")

    sp = add("models", commands.cmd_models, "List available Perplexity API models")
    sp.add_argument("--json", action="store_true", help="Output as JSON")

    cp = sub.add_parser("config", help="Manage configuration")
    csub = cp.add_subparsers(dest="config_cmd", required=True)
    # top-level set-key/view-key/clear-key are aliases of the config subcommands
    for parent, suffix in ((csub, ""), (sub, " (alias for config subcommand)")):
        sp = add("set-key", commands.cmd_config_set_key, "Set the Perplexity API key" + suffix, parent)
        sp.add_argument("key")
        add("view-key", commands.cmd_config_view_key, "View the API key (masked)" + suffix, parent)
        add("clear-key", commands.cmd_config_clear_key, "Remove the stored API key" + suffix, parent)
    sp = add("set", commands.cmd_config_set,
             "Set a default value (model, stream, searchMode, contextSize, language, safeSearch)", csub)
    sp.add_argument("key")
    sp.add_argument("value")
    sp = add("get", commands.cmd_config_get, "Get a config value", csub)
    sp.add_argument("key")
    add("list", commands.cmd_config_list, "Show all configuration", csub)
    add("path", commands.cmd_config_path, "Show config directory path", csub)

    hp = sub.add_parser("help", help="Show this help")
    hp.set_defaults(func=lambda ctx, args: p.print_help())
    return p


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # the SDK's own request logging is noisy below WARNING
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)


def main(argv: Optional[List[str]] = None, ctx: Optional[AppContext] = None) -> None:
    argv = preprocess_argv(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    if not argv:
        parser.print_help()
        return
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    if getattr(args, "json", False) and hasattr(args, "stream"):
        args.stream = False

    setup_logging(args.verbose)
    if ctx is None:
        ctx = AppContext.from_env(api_key_override=args.api_key, verbose=args.verbose,
                                  color=colors_enabled(args.color or "auto"))
    logger.debug("Config dir: %s", ctx.config_dir)
    try:
        args.func(ctx, args)
    except KeyboardInterrupt:
        ctx.console.error("\nInterrupted.")
        sys.exit(130)
    except Exception as e:
        handle_error(e, ctx.console, ctx.verbose or args.verbose)


if __name__ == "__main__":
    main()
