"""Console rendering on top of prompt_toolkit formatted text."""
import json, re, sys
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.output.color_depth import ColorDepth
from prompt_toolkit.shortcuts import print_formatted_text

PTK_STYLE_MAP = {
    "none": "", "default": "",
    "red": "ansired", "green": "ansigreen", "yellow": "ansiyellow",
    "blue": "ansiblue", "cyan": "ansicyan", "white": "ansiwhite",
    "gray": "ansibrightblack", "dim": "dim", "bold": "bold",
}

CITATION_RE = re.compile(r"\[(\d+)\]")

Fragments = List[Tuple[str, str]]


def colors_enabled(mode: str) -> bool:
    """mode: 'auto' (tty only) | 'force' | 'off'"""
    if mode == "off": return False
    if mode == "force": return True
    return sys.stdout.isatty()


def style_name(name: Optional[str], enable: bool) -> str:
    return PTK_STYLE_MAP.get((name or "").lower(), "") if enable else ""


def citation_fragments(text: str, style: str = "", cite_style: str = "ansicyan") -> Fragments:
    """Split text so inline [n] markers carry their own style."""
    frags: Fragments = []
    pos = 0
    for m in CITATION_RE.finditer(text):
        if m.start() > pos:
            frags.append((style, text[pos:m.start()]))
        frags.append((cite_style, m.group(0)))
        pos = m.end()
    if pos < len(text):
        frags.append((style, text[pos:]))
    return frags


class Console:
    def __init__(self, color: bool = True):
        self.color = color

    def style(self, name: Optional[str]) -> str:
        return style_name(name, self.color)

    def fragments(self, frags: Sequence[Tuple[str, str]], end: str = "\n", err: bool = False) -> None:
        if not self.color:
            frags = [("", t) for _, t in frags]
        print_formatted_text(FormattedText(list(frags)), end=end,
                             file=sys.stderr if err else sys.stdout,
                             color_depth=ColorDepth.DEPTH_4_BIT)

    def print(self, text: str = "", color: Optional[str] = None, end: str = "\n", err: bool = False) -> None:
        self.fragments([(self.style(color), text)], end=end, err=err)

    def raw(self, text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    def header(self, text: str) -> None:
        self.print(text, "cyan")

    def success(self, text: str) -> None:
        self.print(text, "green")

    def warning(self, text: str) -> None:
        self.print(text, "yellow")

    def error(self, text: str, hint: Optional[str] = None) -> None:
        self.print(text, "red", err=True)
        if hint:
            self.print(hint, "yellow", err=True)

    def label(self, label: str, value: str, color: str = "yellow", indent: str = "  ") -> None:
        self.fragments([("", indent), (self.style("white"), label + " "), (self.style(color), value)])

    def json(self, data: Any) -> None:
        self.raw(json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n")

    def answer(self, text: str, citations: bool = True, end: str = "\n") -> None:
        """Response text with inline [n] markers highlighted."""
        if citations and self.color:
            self.fragments(citation_fragments(text, self.style("white"), self.style("cyan")), end=end)
        else:
            self.print(text, "white", end=end)

    def sources(self, citations: Optional[Iterable[str]],
                search_results: Optional[Iterable[Dict[str, Any]]]) -> None:
        urls = list(citations or [])
        if not urls:
            return
        by_url = {r.get("url"): r for r in (search_results or []) if isinstance(r, dict)}
        self.print()
        self.header("Sources:")
        for i, url in enumerate(urls, 1):
            num = (self.style("cyan"), f"[{i}]")
            title = (by_url.get(url) or {}).get("title")
            if title:
                self.fragments([("", "  "), num, ("", " "), (self.style("white"), title)])
                self.print(f"      {url}", "blue")
            else:
                self.fragments([("", "  "), num, ("", " "), (self.style("blue"), url)])

    def related(self, questions: Sequence[str]) -> None:
        if not questions:
            return
        self.print()
        self.header("Related questions:")
        for q in questions:
            self.print(f"  - {q}", "gray")
        self.print('\nRun any with: pplx "your question"', "gray")

    def images(self, images: Sequence[Dict[str, Any]]) -> None:
        if not images:
            return
        self.print()
        self.header("Images:")
        for img in images:
            if img.get("title"):
                self.print(f"  {img['title']}", "gray")
            self.print(f"  {img.get('image_url') or img.get('url', '')}", "blue")

    def usage(self, prompt_tokens: int, completion_tokens: int, total_tokens: int) -> None:
        self.fragments([(self.style("gray"), "\nTokens: "),
                        (self.style("yellow"), f"{prompt_tokens} prompt + {completion_tokens} completion = {total_tokens} total")])
