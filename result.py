from dataclasses import dataclass, field
from typing import Any, List, Optional

from schemas import StructuredCard


@dataclass
class InvalidCard:
    """A recovered record that failed card validation."""
    index: int
    data: Any
    errors: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        """Best available name for messages."""
        if isinstance(self.data, dict) and self.data.get("summary"):
            return str(self.data["summary"])[:40]
        return f"record #{self.index + 1}"


@dataclass
class CardBatch:
    """Valid and invalid cards from one reply, in reply order.

    Invalid cards are kept for reporting; they never fail the batch.
    """
    valid: List[StructuredCard] = field(default_factory=list)
    invalid: List[InvalidCard] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.valid) + len(self.invalid)

    @property
    def is_empty(self) -> bool:
        """True when nothing usable was recovered."""
        return not self.valid

    @property
    def is_partial(self) -> bool:
        return bool(self.valid) and bool(self.invalid)

    def invalid_summary(self) -> Optional[str]:
        if not self.invalid:
            return None
        noun = "record" if len(self.invalid) == 1 else "records"
        return f"{len(self.invalid)} {noun} invalid"

    def warnings(self) -> List[str]:
        return [f"{card.label}: {'; '.join(card.errors)}" for card in self.invalid]
