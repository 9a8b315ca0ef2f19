"""Tests for the command line helpers."""

import json
import pathlib

import pytest

from conftest import ScriptedProvider

from postlingo import cli
from postlingo.cli import (
    build_parser,
    derive_output_path,
    sanitise_language_for_filename,
    validate_paths,
)
from postlingo.configuration import PostlingoConfig
from postlingo.errors import (
    OverwriteRefusedError,
    TranslationCancelled,
    TranslationProviderConfigurationError,
    TranslationProviderError,
)


def test_sanitise_language():
    assert sanitise_language_for_filename(" Brazilian Portuguese ") == "Brazilian-Portuguese"
    assert sanitise_language_for_filename("日本語") == "translated"


def test_derive_output_path():
    path = pathlib.Path("/tmp/post.html")
    assert derive_output_path(path, "de") == pathlib.Path("/tmp/post_de.html")


def test_parser_modes():
    parser = build_parser()
    args = parser.parse_args(
        ["html", "post.html", "-s", "en", "-t", "tr", "--max-chunk-size", "300"]
    )
    assert args.mode == "html"
    assert args.max_chunk_size == 300

    args = parser.parse_args(["json", "post.json", "-s", "en", "-t", "ar", "--batch-size", "5"])
    assert args.mode == "json"
    assert args.batch_size == 5


def test_parser_requires_languages():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["html", "post.html", "-t", "tr"])


def test_validate_paths(tmp_path):
    source = tmp_path / "post.html"
    source.write_text("<p>Hi</p>", encoding="utf-8")
    target = tmp_path / "post_tr.html"

    validate_paths(source, target, force_overwrite=False)

    with pytest.raises(OverwriteRefusedError):
        validate_paths(source, source, force_overwrite=True)

    target.write_text("old", encoding="utf-8")
    with pytest.raises(OverwriteRefusedError):
        validate_paths(source, target, force_overwrite=False)
    validate_paths(source, target, force_overwrite=True)

    with pytest.raises(FileNotFoundError):
        validate_paths(tmp_path / "missing.html", target, force_overwrite=True)


@pytest.fixture
def wire(monkeypatch):
    """Route the CLI to in-memory settings and a scripted provider."""

    def install(provider, **settings):
        config = PostlingoConfig(OPENAI_API_KEY="sk-test", **settings)
        monkeypatch.setattr(cli, "get_settings", lambda: config)
        monkeypatch.setattr(cli, "build_provider", lambda name, **kwargs: provider)
        return provider

    return install


class TestMain:
    def test_html_file_is_translated(self, tmp_path, capsys, wire, html_provider):
        wire(html_provider)
        source = tmp_path / "post.html"
        source.write_text("<p>Hello</p>\n", encoding="utf-8")

        assert cli.main(["html", str(source), "-s", "en", "-t", "de"]) == 0

        target = tmp_path / "post_de.html"
        assert target.read_text(encoding="utf-8") == "<P>HELLO</P>\n"
        out = capsys.readouterr().out
        assert "Translation complete." in out
        assert "Content:         1 chunks" in out
        assert "Tokens:          15 (10 in / 5 out)" in out
        assert "en -> de" in out

    def test_json_file_is_translated(
        self, tmp_path, capsys, wire, items_provider, tiptap_document
    ):
        wire(items_provider)
        source = tmp_path / "post.json"
        source.write_text(json.dumps(tiptap_document), encoding="utf-8")
        target = tmp_path / "out" / "translated.json"

        code = cli.main(
            ["json", str(source), "-s", "en", "-t", "xx", "-o", str(target),
             "--batch-size", "3"]
        )

        assert code == 0
        document = json.loads(target.read_text(encoding="utf-8"))
        assert document["content"][0]["content"][0]["text"] == "WELCOME TO DUBAI"
        assert len(items_provider.requests) == 3
        out = capsys.readouterr().out
        assert "Content:         7 text units" in out
        assert "Requests:        3" in out

    def test_translation_error_exits_with_one(self, tmp_path, capsys, wire):
        def handler(request):
            raise TranslationProviderError("service down")

        wire(ScriptedProvider(handler))
        source = tmp_path / "post.html"
        source.write_text("<p>Hello</p>", encoding="utf-8")

        assert cli.main(["html", str(source), "-s", "en", "-t", "de"]) == 1
        assert not (tmp_path / "post_de.html").exists()
        assert "chunk 0 translation failed: service down" in capsys.readouterr().out

    def test_cancelled_translation_exits_with_two(self, tmp_path, wire):
        def handler(request):
            raise TranslationCancelled("Translation was cancelled.")

        wire(ScriptedProvider(handler))
        source = tmp_path / "post.html"
        source.write_text("<p>Hello</p>", encoding="utf-8")

        assert cli.main(["html", str(source), "-s", "en", "-t", "de"]) == 2

    def test_existing_output_is_refused(self, tmp_path, capsys, wire, html_provider):
        wire(html_provider)
        source = tmp_path / "post.html"
        source.write_text("<p>Hello</p>", encoding="utf-8")
        (tmp_path / "post_de.html").write_text("old", encoding="utf-8")

        assert cli.main(["html", str(source), "-s", "en", "-t", "de"]) == 1
        assert (tmp_path / "post_de.html").read_text(encoding="utf-8") == "old"
        assert html_provider.requests == []
        assert "--force" in capsys.readouterr().out

    @pytest.mark.parametrize("option", ["--workers", "--max-chunk-size", "--max-chunks"])
    def test_zero_override_is_rejected(self, tmp_path, capsys, wire, html_provider, option):
        wire(html_provider)
        source = tmp_path / "post.html"
        source.write_text("<p>Hello</p>", encoding="utf-8")

        code = cli.main(["html", str(source), "-s", "en", "-t", "de", option, "0"])

        assert code == 1
        assert html_provider.requests == []
        assert "must be positive integers" in capsys.readouterr().out

    def test_configuration_error_exits_with_one(self, monkeypatch, tmp_path, capsys):
        def broken_settings():
            raise TranslationProviderConfigurationError("OPENAI_API_KEY is required.")

        monkeypatch.setattr(cli, "get_settings", broken_settings)
        source = tmp_path / "post.html"
        source.write_text("<p>Hello</p>", encoding="utf-8")

        assert cli.main(["html", str(source), "-s", "en", "-t", "de"]) == 1
        assert "OPENAI_API_KEY" in capsys.readouterr().out


def test_print_summary(capsys):
    summary = cli.RunSummary(
        input_path=pathlib.Path("post.json"),
        output_path=pathlib.Path("post_tr.json"),
        mode="json",
        unit_count=12,
        request_count=2,
        input_tokens=300,
        output_tokens=120,
        total_tokens=420,
        total_cost=0.0000384,
        source_language="en",
        target_language="tr",
        provider_name="openai",
        model="gpt-4.1-nano",
        elapsed_seconds=1.5,
    )
    cli.print_summary(summary)
    out = capsys.readouterr().out
    assert "Content:         12 text units" in out
    assert "Provider:        openai (gpt-4.1-nano)" in out
    assert "Estimated cost:  $0.000038" in out
    assert "Elapsed time:    1.50 seconds" in out
