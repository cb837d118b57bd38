"""Token counters used for the prompt budget breakdown.

Counts are approximations unless tiktoken is installed; the trace records
which kind was used.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any


class TokenCounter(ABC):
    """Interface for counting tokens in text."""

    @abstractmethod
    def count(self, text: str) -> int:
        """Return the number of tokens in ``text``."""

    @property
    @abstractmethod
    def is_approximate(self) -> bool:
        """Whether ``count`` is an estimate."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


class EstimationTokenCounter(TokenCounter):
    """Character-ratio estimate (~4 chars/token English, ~3 Polish)."""

    def __init__(self, chars_per_token: float = 3.5):
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)

    @property
    def is_approximate(self) -> bool:
        return True

    @property
    def name(self) -> str:
        return f"Estimation (~{self.chars_per_token} chars/token)"


class TiktokenCounter(TokenCounter):
    """Exact counts with tiktoken's ``cl100k_base`` encoding."""

    def __init__(self, encoding: str = "cl100k_base"):
        try:
            import tiktoken
        except ImportError as exc:
            raise ImportError(
                "tiktoken required: pip install hybrid-rag-engine[tiktoken]"
            ) from exc

        self._encoding_name = encoding
        self._enc: Any = tiktoken.get_encoding(encoding)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._enc.encode(text))

    @property
    def is_approximate(self) -> bool:
        return False

    @property
    def name(self) -> str:
        return f"tiktoken ({self._encoding_name})"


def get_token_counter(name: str = "estimate") -> TokenCounter:
    """Return a counter by name: ``estimate`` or ``tiktoken``."""
    key = name.lower()
    if key == "estimate":
        return EstimationTokenCounter()
    if key == "tiktoken":
        return TiktokenCounter()
    raise ValueError(f"Unknown token counter '{name}'. Available: ['estimate', 'tiktoken']")
