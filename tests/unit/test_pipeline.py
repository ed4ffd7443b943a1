"""
Unit tests for the card pipeline with a fake completion step.
"""

import json

import pytest

from config import AppConfig, ConfigurationError
from extractor import ParseError
from pipeline import CardPipeline, PipelineError


def card(summary):
    return {
        "summary": summary,
        "description": f"{summary} description",
        "acceptanceCriteria": ["Given a state", "When an action happens", "Then a result follows"],
    }


class FakeGenerator:
    """Returns a canned reply and remembers the text it was given."""

    def __init__(self, reply):
        self.reply = reply
        self.documents = []

    def request_cards(self, document_text):
        self.documents.append(document_text)
        return self.reply


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "product.md"
    path.write_text("# Product\n\nUsers can export reports.\n", encoding="utf-8")
    return path


def make_pipeline(tmp_path, reporter, reply):
    config = AppConfig(cache_dir=str(tmp_path / "cache"))
    return CardPipeline(config, reporter, generator=FakeGenerator(reply))


class TestCardPipeline:
    """Tests for CardPipeline.run and its steps."""

    def test_run_from_local_file(self, tmp_path, reporter, source):
        pipeline = make_pipeline(tmp_path, reporter, json.dumps([card("Export"), card("Share")]))
        result = pipeline.run(str(source))

        assert [c.summary for c in result.cards] == ["Export", "Share"]
        assert not result.is_partial
        assert result.document.source == "local_markdown"
        assert pipeline.generator.documents == ["# Product\n\nUsers can export reports."]
        assert result.metrics.cards_valid == 2
        assert result.metrics.document_source == "local_markdown"
        assert result.metrics.duration_seconds >= 0

        assert pipeline.cache.latest_document_path.exists()
        assert pipeline.cache.latest_reply_path.exists()
        saved = json.loads(pipeline.cache.latest_cards_path.read_text(encoding="utf-8"))
        assert [c["summary"] for c in saved] == ["Export", "Share"]

    def test_partial_success(self, tmp_path, reporter, source):
        reply = json.dumps([card("Export"), {"summary": "Broken"}])
        result = make_pipeline(tmp_path, reporter, reply).run(str(source))

        assert result.is_partial
        assert result.metrics.cards_invalid == 1
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Broken:")

    def test_no_valid_cards(self, tmp_path, reporter, source):
        pipeline = make_pipeline(tmp_path, reporter, json.dumps([{"summary": "Broken"}]))
        with pytest.raises(PipelineError) as exc_info:
            pipeline.run(str(source))

        assert "1 record invalid" in str(exc_info.value)
        assert exc_info.value.metrics.cards_invalid == 1
        assert not pipeline.cache.latest_cards_path.exists()

    def test_empty_array(self, tmp_path, reporter, source):
        with pytest.raises(PipelineError, match="empty array"):
            make_pipeline(tmp_path, reporter, "[]").run(str(source))

    def test_unparseable_reply_is_kept(self, tmp_path, reporter, source):
        pipeline = make_pipeline(tmp_path, reporter, "Sorry, I cannot help with that.")
        with pytest.raises(ParseError):
            pipeline.run(str(source))

        assert pipeline.cache.latest_reply_path.read_text(encoding="utf-8") == "Sorry, I cannot help with that."
        assert "Reply kept for inspection" in reporter.error_stream.getvalue()

    def test_generate_from_snapshot(self, tmp_path, reporter, source):
        pipeline = make_pipeline(tmp_path, reporter, json.dumps([card("Export")]))
        pipeline.read_document(str(source))

        document = pipeline.load_document()
        batch = pipeline.generate(document)

        assert document.source == "cache"
        assert [c.summary for c in batch.valid] == ["Export"]

    def test_recover_saved_reply(self, tmp_path, reporter):
        pipeline = make_pipeline(tmp_path, reporter, "")
        batch = pipeline.recover("```json\n" + json.dumps([card("Export")]) + "\n```")

        assert len(batch.valid) == 1
        assert pipeline.cache.load_cards()[0].summary == "Export"

    def test_remote_source_requires_configuration(self, tmp_path, reporter):
        pipeline = CardPipeline(AppConfig(cache_dir=str(tmp_path)), reporter)
        with pytest.raises(ConfigurationError):
            pipeline.read_document()
        with pytest.raises(ConfigurationError):
            pipeline.generator

    def test_close_without_remote_client(self, tmp_path, reporter):
        pipeline = make_pipeline(tmp_path, reporter, "[]")
        pipeline.close()
        assert pipeline._docs_client is None
