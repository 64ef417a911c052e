"""Extension point for external semantic capture (AST/symbol linkage).

The hooks never parse source code themselves. A SemanticCapture plugged
into the post-hook may return link references (e.g. "symbol:pkg.mod.func")
for a mutated file; its absence or failure never blocks the mutation.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional


class SemanticCapture(ABC):
    @abstractmethod
    def capture(self, path: str, content: str) -> Optional[List[str]]:
        """Return link references for ``path``, or None when not applicable."""
        pass


class CallableSemanticCapture(SemanticCapture):
    """Adapts a plain function ``(path, content) -> links``."""

    def __init__(self, func: Callable[[str, str], Optional[List[str]]]):
        self.func = func

    def capture(self, path: str, content: str) -> Optional[List[str]]:
        return self.func(path, content)
