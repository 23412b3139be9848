from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from docingest.database.models import DocumentRecord
from docingest.extraction.cancellation import CancellationToken


@dataclass
class ExtractionContext:
    document: DocumentRecord
    content: bytes
    token: CancellationToken = field(default_factory=CancellationToken)


@dataclass(frozen=True)
class ExtractionOutcome:
    """Document-level totals of a successful extraction pass."""

    method: str
    page_count: int
    word_count: int


class ExtractionStrategy(ABC):
    """Contract for per-format extraction. Strategies write their own page records."""

    @abstractmethod
    def extract(self, context: ExtractionContext) -> ExtractionOutcome:
        """Extract text of one document into the page store.

        Raises:
            ExtractionError: if no usable text could be produced.
            ExtractionCancelledError: if the context token was cancelled.
        """
