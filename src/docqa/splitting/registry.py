"""Cache of splitter instances keyed by strategy."""
from __future__ import annotations

import logging
from typing import Dict, List

from .strategies import SplitStrategy, TextSplitter, build_splitter

LOGGER = logging.getLogger(__name__)


class SplitterRegistry:
    """Hands out one shared splitter per strategy.

    Splitters are stateless, so concurrent first lookups may each build one;
    ``dict.setdefault`` keeps whichever was stored first.
    """

    def __init__(self) -> None:
        self._splitters: Dict[SplitStrategy, TextSplitter] = {}

    def get(self, name: "str | SplitStrategy") -> TextSplitter:
        strategy = SplitStrategy.parse(name)
        splitter = self._splitters.get(strategy)
        if splitter is None:
            splitter = self._splitters.setdefault(strategy, build_splitter(strategy))
            LOGGER.debug("Initialised splitter %s", strategy.value)
        return splitter

    @staticmethod
    def available() -> List[str]:
        return [strategy.value for strategy in SplitStrategy]

    def is_available(self, name: str) -> bool:
        try:
            SplitStrategy.parse(name)
        except ValueError:
            return False
        return True
