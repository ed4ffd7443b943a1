"""Composable prompt components for card generation."""

from schemas import PRIORITY_LABELS, SUMMARY_MAX_LENGTH


MARKDOWN_READING_RULES = """## READING THE MARKDOWN
- Headings (# ## ###) = main product sections
- Lists (- * 1. 2.) = requirements and features
- Code blocks = technical specifications
- Tables (|) = structured data
- Links [text](url) = important references
- **Bold** = key points, *italic* = emphasis"""


CARD_RULES = f"""## CARD RULES
1. Split large topics into several small, atomic cards
2. Every card must be independently implementable
3. Focus on user value and clear acceptance criteria
4. Write acceptance criteria as Given/When/Then statements
5. Keep every summary under {SUMMARY_MAX_LENGTH} characters
6. Prioritize by user impact and dependencies"""


def _output_format_rules() -> str:
    priorities = ", ".join(f'"{label}"' for label in PRIORITY_LABELS)
    return f"""## OUTPUT FORMAT
Return ONLY a valid JSON array of objects with exactly these fields:
- summary (string, max {SUMMARY_MAX_LENGTH} chars): short story title
- description (string): detailed description in markdown
- acceptanceCriteria (array of strings): Given/When/Then statements
- labels (array of strings, optional): relevant tags
- priority (optional): one of {priorities}
- storyPoints (number, optional): effort estimate (1-13)
- component (string, optional): system component
- epicLink (string, optional): related epic
- linkedIssues (array of strings, optional): related issue keys

Example:
[
  {{
    "summary": "User can log in with email and password",
    "description": "As a user, I want to log in so that I can access my account.",
    "acceptanceCriteria": [
      "Given I am on the login page",
      "When I enter a valid email and password",
      "Then I am redirected to the dashboard"
    ],
    "labels": ["authentication"],
    "priority": "High",
    "storyPoints": 3
  }}
]"""


def build_system_prompt(language: str) -> str:
    """System prompt for the card generator."""
    return f"""You are a product analyst who turns markdown product documentation into small, self-contained, ticket-ready user stories in BDD (Behavior-Driven Development) format.

{MARKDOWN_READING_RULES}

{CARD_RULES}

{_output_format_rules()}

ALWAYS write all card content in {language}.
IMPORTANT: Return ONLY the JSON array, with no extra text or formatting."""


def build_user_prompt(document_text: str, language: str, min_cards: int = 5, max_cards: int = 15) -> str:
    return f"""Please analyze the following markdown document and generate BDD user stories:

{document_text}

Generate {min_cards}-{max_cards} cards covering the main features and requirements. Focus on:
- User-facing functionality
- Clear acceptance criteria derived from the requirements
- Atomic, implementable stories
- Priorities that follow the document structure
- Components named in the technical sections
- Content written in {language}

Return the result as a JSON array following exactly the schema from the system prompt."""


CONNECTION_CHECK_PROMPT = 'Hello, please respond with "OK"'
