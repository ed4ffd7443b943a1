import json
import re
from functools import lru_cache
from typing import Any, Callable, List, Optional

import pydantic
import tiktoken
from openai import OpenAI

from config import CompletionConfig
from console import Reporter
from prompts import CONNECTION_CHECK_PROMPT, build_system_prompt, build_user_prompt
from result import CardBatch, InvalidCard
from retry import RetryPolicy
from schemas import StructuredCard


class ParseError(ValueError):
    """No JSON array could be recovered from the reply, even after repair.

    Keeps the full reply plus the candidate before and after repair so the
    reply can be inspected by hand.
    """

    def __init__(self, message: str, raw: str, original: str, repaired: str):
        super().__init__(message)
        self.raw = raw
        self.original = original
        self.repaired = repaired


class CompletionError(RuntimeError):
    """The completion service answered without usable content."""


# ---------------------------------------------------------------------------
# Token estimates (logging only)
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def _tokenizer():
    try:
        return tiktoken.get_encoding("o200k_base")
    except Exception:
        return tiktoken.get_encoding("cl100k_base")


def estimate_tokens(text: str) -> int:
    """Count tokens using tiktoken."""
    return len(_tokenizer().encode(text))


# ---------------------------------------------------------------------------
# Step 1: candidate extraction
# ---------------------------------------------------------------------------

JSON_FENCE = re.compile(r"```json[ \t]*\r?\n(.*?)```", re.DOTALL | re.IGNORECASE)
ANY_FENCE = re.compile(r"```[^\n`]*\r?\n(.*?)```", re.DOTALL)


def extract_candidate(raw_reply: str) -> str:
    """The part of the reply most likely to hold the JSON array."""
    raw_reply = raw_reply or ""
    match = JSON_FENCE.search(raw_reply) or ANY_FENCE.search(raw_reply)
    if match:
        return match.group(1).strip()
    return raw_reply.strip()


# ---------------------------------------------------------------------------
# Step 3: best-effort repair
# ---------------------------------------------------------------------------

STRING_LITERAL = re.compile(r'"(?:\\.|[^"\\])*"')
TRAILING_COMMA = re.compile(r",(\s*[}\]])")
BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][\w$-]*)\s*:")
BARE_VALUE = re.compile(r"(:\s*)([^\s\"{\[\]},][^,}\]\n]*?)(\s*)(?=[,}\]\n]|$)")
JSON_LITERAL = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null")
COLON_SPACING = re.compile(r"\s*:\s*")


def _outside_strings(text: str, transform: Callable[[str], str]) -> str:
    """Apply `transform` to the text between string literals only."""
    parts = []
    last = 0
    for match in STRING_LITERAL.finditer(text):
        parts.append(transform(text[last:match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(transform(text[last:]))
    return "".join(parts)


def _quote_bare_value(match: re.Match) -> str:
    value = match.group(2).strip()
    if JSON_LITERAL.fullmatch(value):
        return match.group(0)
    return f"{match.group(1)}{json.dumps(value, ensure_ascii=False)}{match.group(3)}"


def _trim_to_array(text: str) -> str:
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end < start:
        return text
    return text[start:end + 1]


def repair_json(candidate: str) -> str:
    """Rewrite near-JSON into something `json.loads` may accept.

    Heuristic only: values holding unescaped commas or colons can still come
    out broken. Each rewrite runs outside string literals so quoted text is
    never touched.
    """
    fixed = _trim_to_array((candidate or "").strip())
    fixed = _outside_strings(fixed, lambda s: TRAILING_COMMA.sub(r"\1", s))
    fixed = _outside_strings(fixed, lambda s: BARE_KEY.sub(r'\1"\2":', s))
    fixed = _outside_strings(fixed, lambda s: BARE_VALUE.sub(_quote_bare_value, s))
    fixed = _outside_strings(fixed, lambda s: COLON_SPACING.sub(": ", s))
    return fixed


# ---------------------------------------------------------------------------
# Steps 2 + 4: parsing and per-card validation
# ---------------------------------------------------------------------------

def _parse_array(text: str) -> List[Any]:
    parsed = json.loads(text)
    if not isinstance(parsed, list):
        raise ValueError(f"expected a JSON array, got {type(parsed).__name__}")
    return parsed


def _describe(error: pydantic.ValidationError) -> List[str]:
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "card"
        messages.append(f"{location}: {detail.get('msg', 'invalid')}")
    return messages


def validate_cards(items: List[Any]) -> CardBatch:
    """Validate every record independently; invalid ones are set aside."""
    batch = CardBatch()
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            batch.invalid.append(InvalidCard(index, item, ["expected a JSON object"]))
            continue
        try:
            batch.valid.append(StructuredCard.model_validate(item))
        except pydantic.ValidationError as e:
            batch.invalid.append(InvalidCard(index, item, _describe(e)))
    return batch


def recover(raw_reply: str, reporter: Optional[Reporter] = None) -> CardBatch:
    """Recover validated cards from a free-form completion reply.

    Raises ParseError when no JSON array can be read even after repair.
    """
    candidate = extract_candidate(raw_reply)
    try:
        items = _parse_array(candidate)
    except ValueError:
        if reporter:
            reporter.warning("Failed to parse JSON from the reply, attempting to fix...")
        repaired = repair_json(candidate)
        try:
            items = _parse_array(repaired)
        except ValueError as e:
            raise ParseError(
                f"Could not recover a JSON array from the reply: {e}",
                raw=raw_reply,
                original=candidate,
                repaired=repaired,
            ) from e
        if reporter:
            reporter.debug("Repaired JSON parsed successfully")

    batch = validate_cards(items)
    if reporter and batch.invalid:
        reporter.warning(f"{batch.invalid_summary()} (of {batch.total})")
        for warning in batch.warnings():
            reporter.debug(warning)
    return batch


# ---------------------------------------------------------------------------
# Completion service
# ---------------------------------------------------------------------------

def build_client(config: CompletionConfig) -> OpenAI:
    """OpenAI client for the configured endpoint; retries are left to RetryPolicy."""
    return OpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=config.timeout,
        max_retries=0,
    )


def reply_content(response) -> str:
    """Generated text of the first choice."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise CompletionError("No choices received from the completion service")
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not content:
        raise CompletionError("No content received from the completion service")
    return content


class CardGenerator:
    """Sends document text to the completion service and returns its reply."""

    def __init__(
        self,
        config: CompletionConfig,
        policy: Optional[RetryPolicy] = None,
        reporter: Optional[Reporter] = None,
        client=None,
    ):
        self.config = config
        self.policy = policy or RetryPolicy()
        self.reporter = (reporter or Reporter()).child("Completion")
        self.client = client or build_client(config)

    def _complete(self, messages: List[dict], max_tokens: int) -> str:
        def call():
            self.reporter.api_call("POST", "chat/completions")
            return self.client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                max_completion_tokens=max_tokens,
                temperature=self.config.temperature,
            )

        response = self.policy.execute(call, self.reporter)
        return reply_content(response)

    def request_cards(self, document_text: str) -> str:
        """Raw reply for the card-generation prompt."""
        self.reporter.info(f"Generating cards with {self.config.model}...")
        prompt = build_user_prompt(document_text, self.config.language)
        if self.reporter.verbose:
            self.reporter.debug(f"Prompt: {len(prompt):,} chars ({estimate_tokens(prompt):,} tokens)")

        content = self._complete(
            [
                {"role": "system", "content": build_system_prompt(self.config.language)},
                {"role": "user", "content": prompt},
            ],
            self.config.max_tokens,
        )
        self.reporter.debug(f"Raw reply: {content[:500]}")
        return content

    def check_connection(self) -> bool:
        self.reporter.info("Validating completion connection...")
        self._complete([{"role": "user", "content": CONNECTION_CHECK_PROMPT}], 10)
        self.reporter.success("Completion connection validated")
        return True
