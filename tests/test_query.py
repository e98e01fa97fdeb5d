"""Tests for query parameter building and the query command."""

import json

import pytest

from conftest import make_chunks, make_completion
from pplx_cli.cli import main
from pplx_cli.options import QueryOptions
from pplx_cli.query import DEFAULT_SYSTEM_PROMPT, build_messages, build_params, create_completion


class TestBuildMessages:
    def test_system_then_user(self):
        msgs = build_messages("Q?", DEFAULT_SYSTEM_PROMPT)
        assert msgs == [{"role": "system", "content": "Be precise and concise."}, {"role": "user", "content": "Q?"}]

    def test_thread_history_in_between(self):
        prior = [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]
        msgs = build_messages("c", "sys", prior)
        assert [m["content"] for m in msgs] == ["sys", "a", "b", "c"]


class TestBuildParams:
    def test_minimal(self):
        params = build_params([], QueryOptions(model="sonar"))
        assert params == {"model": "sonar", "messages": []}

    def test_all_search_controls(self):
        opts = QueryOptions(
            model="sonar-pro", search_mode="academic", recency="week", after="01/01/2024",
            before="12/31/2024", images=True, related=True, reasoning="high", context_size="low",
            language="fr", safe_search=True, search=False,
        )
        params = build_params([], opts)
        assert params["search_mode"] == "academic"
        assert params["search_recency_filter"] == "week"
        assert params["search_after_date_filter"] == "01/01/2024"
        assert params["search_before_date_filter"] == "12/31/2024"
        assert params["return_images"] is True
        assert params["return_related_questions"] is True
        assert params["reasoning_effort"] == "high"
        assert params["search_language_filter"] == ["fr"]
        assert params["disable_search"] is True
        assert params["safe_search"] is True
        assert params["web_search_options"] == {"search_context_size": "low"}

    @pytest.mark.parametrize("domain,exclude,expected", [
        (("a.com",), ("b.com",), ["a.com", "-b.com"]),
        ((), ("b.com", "c.com"), ["-b.com", "-c.com"]),
        (("a.com", "d.com"), (), ["a.com", "d.com"]),
    ])
    def test_domain_filter(self, domain, exclude, expected):
        params = build_params([], QueryOptions(model="sonar", domain=domain, exclude_domain=exclude))
        assert params["search_domain_filter"] == expected

    def test_extras_go_to_extra_body(self, fake_client):
        create_completion(fake_client, {"model": "sonar", "messages": [], "search_mode": "sec"}, stream=False)
        call = fake_client.calls[0]
        assert call["model"] == "sonar"
        assert call["stream"] is False
        assert call["extra_body"] == {"search_mode": "sec"}


class TestQueryCommand:
    def test_non_stream_prints_and_saves_history(self, ctx, with_client, capsys):
        main(["query", "What", "is", "Python?", "--no-stream"], ctx=ctx)
        out = capsys.readouterr().out
        assert "Hello [1] world." in out
        assert "https://a.example" in out
        assert "10 prompt + 20 completion = 30 total" in out
        [entry] = ctx.history.list()
        assert entry["question"] == "What is Python?"
        assert entry["responsePreview"] == "Hello [1] world."
        assert entry["citations"] == 1
        assert ctx.threads.list_all() == []

    def test_bare_question_is_a_query(self, ctx, with_client, capsys):
        main(["Why is the sky blue?", "--no-stream", "-m", "sonar-pro"], ctx=ctx)
        assert with_client.calls[0]["model"] == "sonar-pro"
        assert with_client.calls[0]["messages"][-1] == {"role": "user", "content": "Why is the sky blue?"}

    def test_stream_collects_chunks(self, ctx, with_client, capsys):
        with_client.chunks = make_chunks(["Hel", "lo"], citations=["https://s.example"])
        main(["query", "hi"], ctx=ctx)
        out = capsys.readouterr().out
        assert "Hello" in out
        assert "https://s.example" in out
        assert with_client.calls[0]["stream"] is True
        assert ctx.history.list()[0]["responsePreview"] == "Hello"

    def test_stored_default_disables_stream(self, ctx, with_client, capsys):
        ctx.settings.save({"defaults": {"stream": False}})
        main(["query", "hi"], ctx=ctx)
        assert with_client.calls[0]["stream"] is False

    def test_continue_creates_then_extends_thread(self, ctx, with_client, capsys):
        main(["query", "first", "--no-stream", "-c"], ctx=ctx)
        tid = ctx.threads.latest()
        assert [m["content"] for m in ctx.threads.get(tid)["messages"]] == ["first", "Hello [1] world."]

        with_client.completion = make_completion("second answer")
        main(["query", "second", "--no-stream", "--continue"], ctx=ctx)
        sent = [m["content"] for m in with_client.calls[-1]["messages"]]
        assert sent == [DEFAULT_SYSTEM_PROMPT, "first", "Hello [1] world.", "second"]
        assert ctx.threads.latest() == tid
        assert len(ctx.threads.get(tid)["messages"]) == 4

    def test_explicit_thread(self, ctx, with_client, capsys):
        tid = ctx.threads.create("sonar")
        main(["query", "hello", "--no-stream", "--thread", tid], ctx=ctx)
        assert len(ctx.threads.get(tid)["messages"]) == 2

    def test_unknown_thread_is_an_error(self, ctx, with_client, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["query", "hello", "--thread", "missing"], ctx=ctx)
        assert exc.value.code == 1
        assert "Thread not found: missing" in capsys.readouterr().err
        assert with_client.calls == []

    def test_output_file(self, ctx, with_client, tmp_path, capsys):
        target = tmp_path / "answer.txt"
        main(["query", "hi", "--no-stream", "-o", str(target)], ctx=ctx)
        assert target.read_text(encoding="utf-8") == "Hello [1] world."

    def test_raw_output(self, ctx, with_client, capsys):
        main(["query", "hi", "--no-stream", "--raw", "--no-citations"], ctx=ctx)
        assert capsys.readouterr().out == "Hello [1] world."

    def test_related_questions(self, ctx, with_client, capsys):
        with_client.completion = make_completion("x", related=["What next?"])
        main(["query", "hi", "--no-stream", "--related"], ctx=ctx)
        assert "What next?" in capsys.readouterr().out
        assert with_client.calls[0]["extra_body"]["return_related_questions"] is True

    def test_missing_key_exits_before_request(self, ctx, fake_client, monkeypatch, capsys):
        monkeypatch.setattr(ctx, "client", lambda key: fake_client)
        with pytest.raises(SystemExit) as exc:
            main(["query", "hi"], ctx=ctx)
        assert exc.value.code == 1
        assert "No API key configured" in capsys.readouterr().err
        assert fake_client.calls == []

    def test_json_output_is_blocking_and_bare(self, ctx, with_client, capsys):
        main(["query", "hi", "--json"], ctx=ctx)
        assert with_client.calls[0]["stream"] is False
        out = capsys.readouterr().out
        data = json.loads(out)
        assert data["citations"] == ["https://a.example"]
        assert "Sources:" not in out
        assert "Tokens:" not in out
        assert ctx.history.list()[0]["citations"] == 1

    def test_images_rendered(self, ctx, with_client, capsys):
        with_client.completion = make_completion(
            "x", images=[{"image_url": "https://img.example/a.png", "title": "A chart"}])
        main(["query", "hi", "--no-stream", "--images"], ctx=ctx)
        out = capsys.readouterr().out
        assert "Images:" in out
        assert "A chart" in out
        assert "https://img.example/a.png" in out
        assert with_client.calls[0]["extra_body"]["return_images"] is True

    def test_empty_citation_list_counts_zero(self, ctx, with_client, capsys):
        with_client.completion = make_completion("no sources", citations=[])
        main(["query", "hi", "--no-stream"], ctx=ctx)
        assert ctx.history.list()[0]["citations"] == 0

    def test_missing_citations_not_recorded(self, ctx, with_client, capsys):
        with_client.completion = make_completion("no sources")
        main(["query", "hi", "--no-stream"], ctx=ctx)
        assert "citations" not in ctx.history.list()[0]

    @pytest.mark.parametrize("tid", ["../config", "a/b"])
    def test_thread_id_cannot_escape_threads_dir(self, ctx, with_client, capsys, tid):
        ctx.settings.save({"apiKey": "stored-key"})
        with pytest.raises(SystemExit) as exc:
            main(["query", "hello", "--thread", tid], ctx=ctx)
        assert exc.value.code == 1
        assert "Invalid thread id" in capsys.readouterr().err
        assert ctx.settings.load() == {"apiKey": "stored-key"}
        assert with_client.calls == []
