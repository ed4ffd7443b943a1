import argparse
import sys
from pathlib import Path
from typing import List

# Fix Windows console encoding
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding='utf-8')
    sys.stderr.reconfigure(encoding='utf-8')

import httpx
import openai

from config import ConfigurationError, load_config
from console import Reporter
from extractor import CompletionError, ParseError
from pipeline import CardPipeline, PipelineError
from result import CardBatch
from schemas import StructuredCard


def print_preview(cards: List[StructuredCard]) -> None:
    """Short console preview of generated cards."""
    print("\nGenerated cards:")
    print("=" * 80)
    for index, card in enumerate(cards, start=1):
        print(f"\n{index}. {card.summary}")
        print(f"   Priority: {card.priority or 'Not set'}")
        print(f"   Story Points: {card.story_points if card.story_points is not None else 'Not set'}")
        print(f"   Labels: {', '.join(card.labels) if card.labels else 'None'}")
        print("   Acceptance Criteria:")
        for criterion in card.acceptance_criteria[:2]:
            print(f"     • {criterion}")
        if len(card.acceptance_criteria) > 2:
            print(f"     • ... and {len(card.acceptance_criteria) - 2} more")
    print("\n" + "=" * 80)


def report_batch(batch: CardBatch, reporter: Reporter) -> None:
    print_preview(batch.valid)
    if batch.invalid:
        reporter.warning(f"Partial success: {batch.invalid_summary()}")
        for warning in batch.warnings():
            reporter.warning(f"  {warning}")


def cmd_read(pipeline: CardPipeline, args) -> int:
    local = args.file if args.file else ("" if args.local else None)
    document = pipeline.read_document(local)
    pipeline.reporter.info(f"Snapshot: {pipeline.cache.latest_document_path}")
    if args.print:
        print(document.normalized_text)
    return 0


def cmd_generate(pipeline: CardPipeline, args) -> int:
    document = pipeline.load_document(args.file)
    batch = pipeline.generate(document)
    report_batch(batch, pipeline.reporter)
    print(f"✓ Cards saved to: {pipeline.cache.latest_cards_path}")
    return 0


def cmd_parse(pipeline: CardPipeline, args) -> int:
    path = Path(args.file) if args.file else pipeline.cache.latest_reply_path
    if not path.exists():
        raise FileNotFoundError(f"Reply file not found: {path}")
    batch = pipeline.recover(path.read_text(encoding="utf-8"))
    report_batch(batch, pipeline.reporter)
    print(f"✓ Cards saved to: {pipeline.cache.latest_cards_path}")
    return 0


def cmd_run(pipeline: CardPipeline, args) -> int:
    local = args.file if args.file else ("" if args.local else None)
    result = pipeline.run(local)
    report_batch(result.batch, pipeline.reporter)
    metrics = result.metrics
    pipeline.reporter.info(
        f"{metrics.cards_valid} valid / {metrics.cards_invalid} invalid cards "
        f"from {metrics.document_chars:,} chars in {metrics.duration_seconds:.1f}s"
    )
    print(f"✓ Cards saved to: {pipeline.cache.latest_cards_path}")
    return 0


def cmd_cards(pipeline: CardPipeline, args) -> int:
    cards = pipeline.cache.load_cards(Path(args.file) if args.file else None)
    print_preview(cards)
    return 0


def cmd_check(pipeline: CardPipeline, args) -> int:
    pipeline.generator.check_connection()
    info = pipeline.docs_client.document_info()
    pipeline.reporter.success(f"Document reachable: {info['title']} ({info['document_id']})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Turn a Google Docs document into validated BDD cards (JSON)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py read
    python main.py read --local
    python main.py generate --verbose
    python main.py parse --file .cache/completion_reply_latest.txt
    python main.py run
    python main.py cards
        """
    )
    parser.add_argument("-c", "--config", default=".env", help="Path to the .env file (default: .env)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print debug lines and API calls")

    commands = parser.add_subparsers(dest="command", required=True)

    read = commands.add_parser("read", help="Pull and normalize the source document")
    read.add_argument("--local", action="store_true", help="Skip Google Docs and search for a local markdown file")
    read.add_argument("-f", "--file", help="Read this local markdown file instead of Google Docs")
    read.add_argument("--print", action="store_true", help="Print the normalized text")
    read.set_defaults(handler=cmd_read)

    generate = commands.add_parser("generate", help="Send the normalized document to the model and recover cards")
    generate.add_argument("-f", "--file", help="Document snapshot (default: .cache/source_doc_latest.md)")
    generate.set_defaults(handler=cmd_generate)

    parse = commands.add_parser("parse", help="Recover cards from a saved model reply")
    parse.add_argument("-f", "--file", help="Reply file (default: .cache/completion_reply_latest.txt)")
    parse.set_defaults(handler=cmd_parse)

    run = commands.add_parser("run", help="Read the document, then generate cards")
    run.add_argument("--local", action="store_true", help="Use a local markdown file as the source")
    run.add_argument("-f", "--file", help="Local markdown file to use as the source")
    run.set_defaults(handler=cmd_run)

    cards = commands.add_parser("cards", help="Preview the cards saved by the last run")
    cards.add_argument("-f", "--file", help="Cards file (default: .cache/cards_latest.json)")
    cards.set_defaults(handler=cmd_cards)

    check = commands.add_parser("check", help="Validate the completion endpoint and document access")
    check.set_defaults(handler=cmd_check)

    return parser


def main(argv=None) -> int:
    """Main entry point for CLI usage."""
    args = build_parser().parse_args(argv)
    pipeline = None

    try:
        config = load_config(args.config)
        reporter = Reporter(verbose=args.verbose or config.verbose)
        pipeline = CardPipeline(config, reporter)
        return args.handler(pipeline, args)

    except ConfigurationError as e:
        print(f"✗ Configuration Error: {e}", file=sys.stderr)
    except ParseError as e:
        print(f"✗ Parse Error: {e}", file=sys.stderr)
        if args.verbose:
            print(f"--- repaired candidate ---\n{e.repaired[:2000]}", file=sys.stderr)
    except PipelineError as e:
        print(f"✗ {e}", file=sys.stderr)
    except FileNotFoundError as e:
        print(f"✗ Error: {e}", file=sys.stderr)
    except httpx.HTTPStatusError as e:
        pipeline.reporter.exception(e, str(e.request.url))
    except (httpx.HTTPError, openai.APIError, CompletionError) as e:
        print(f"✗ API Error: {type(e).__name__}: {e}", file=sys.stderr)
    except Exception as e:
        print(f"✗ Unexpected Error: {type(e).__name__}: {e}", file=sys.stderr)
    finally:
        if pipeline is not None:
            pipeline.close()
    return 1


if __name__ == "__main__":
    sys.exit(main())
