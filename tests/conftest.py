"""Shared test fixtures for pplx-cli."""

import itertools
from types import SimpleNamespace

import pytest

from pplx_cli.context import AppContext


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PERPLEXITY_API_KEY", "PERPLEXITY_MODEL", "PERPLEXITY_CONFIG_DIR", "XDG_CONFIG_HOME", "PPLX_COLOR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_dir(tmp_path):
    return tmp_path / "pplx"


@pytest.fixture
def clock():
    """Strictly increasing epoch-ms clock so ordering by timestamp is deterministic."""
    counter = itertools.count(1_700_000_000_000, 1000)
    return lambda: next(counter)


@pytest.fixture
def ctx(config_dir, clock):
    context = AppContext(config_dir, color=False, legacy_config=None, clock=clock)
    yield context
    context.reset()


def make_completion(text, citations=None, search_results=None, related=None, images=None, usage=(10, 20, 30)):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        citations=citations,
        search_results=search_results,
        related_questions=related,
        images=images,
        usage=SimpleNamespace(prompt_tokens=usage[0], completion_tokens=usage[1], total_tokens=usage[2]),
    )


def make_chunks(parts, citations=None):
    chunks = [SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=p))]) for p in parts]
    if citations:
        chunks.append(SimpleNamespace(choices=[], citations=citations))
    return chunks


class FakeCompletions:
    def __init__(self, client):
        self.client = client

    def create(self, **kw):
        self.client.calls.append(kw)
        if kw.get("stream"):
            return iter(self.client.chunks)
        return self.client.completion


class FakeClient:
    """Stands in for openai.OpenAI: records chat calls and replays async job states."""

    def __init__(self, completion=None, chunks=None, jobs=None):
        self.completion = completion or make_completion("Hello [1] world.", citations=["https://a.example"])
        self.chunks = chunks or []
        self.jobs = list(jobs or [])
        self.calls = []
        self.posts = []
        self.gets = []
        self.chat = SimpleNamespace(completions=FakeCompletions(self))

    def post(self, path, *, body=None, cast_to=None):
        self.posts.append((path, body))
        return {"id": "req-123", "status": "CREATED"}

    def get(self, path, *, cast_to=None):
        self.gets.append(path)
        return self.jobs.pop(0) if len(self.jobs) > 1 else self.jobs[0]


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def with_client(ctx, fake_client, monkeypatch):
    """Route ctx.client() to the fake and give the context a key."""
    monkeypatch.setenv("PERPLEXITY_API_KEY", "pplx-test-key")
    monkeypatch.setattr(ctx, "client", lambda key: fake_client)
    return fake_client
