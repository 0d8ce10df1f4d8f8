"""Abstract base class for all backer sources."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from github_backers.config import BackersQueryOptions
from github_backers.models import Backers
from github_backers.registry import FellowRegistry

logger = logging.getLogger("backers.provider")


class BaseProvider(ABC):
    """Each source overrides fetch() and declares SOURCE_NAME."""

    SOURCE_NAME: str = ""

    def __init__(self, options: BackersQueryOptions, registry: FellowRegistry) -> None:
        self.options = options
        self.registry = registry

    @abstractmethod
    def fetch(self, target: Any) -> Backers:
        """Fetch the backers ``target`` has on this source. Only the categories it knows are filled."""

    def fetch_with_tracking(self, target: Any) -> Backers:
        """Wrap fetch() with timing and a summary log line. Failures propagate."""
        started = time.monotonic()
        result = self.fetch(target)
        records = sum(len(fellows) for _, fellows in result.items())
        logger.info(
            "Fetched %s backers",
            self.SOURCE_NAME,
            extra={
                "source": self.SOURCE_NAME,
                "records": records,
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return result
