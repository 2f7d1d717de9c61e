"""Selector capability used by the extraction engine."""

from __future__ import annotations

from typing import Any, List, Optional, Protocol

import soupsieve


class SelectorError(ValueError):
    """Raised when a selector expression cannot be compiled."""


class Selector(Protocol):
    pattern: str

    def matches(self, node: Any) -> bool:
        ...

    def select_first(self, root: Any) -> Optional[Any]:
        ...

    def select_all(self, root: Any) -> List[Any]:
        ...


class CssSelector:
    """CSS selector backed by soupsieve, the matching engine behind BeautifulSoup."""

    def __init__(self, pattern: str) -> None:
        if not isinstance(pattern, str) or not pattern.strip():
            raise SelectorError(f"invalid CSS selector '{pattern}': empty expression")
        try:
            self._compiled = soupsieve.compile(pattern)
        except soupsieve.SelectorSyntaxError as exc:
            raise SelectorError(f"invalid CSS selector '{pattern}': {exc}") from exc
        self.pattern = pattern

    def matches(self, node: Any) -> bool:
        return bool(self._compiled.match(node))

    def select_first(self, root: Any) -> Optional[Any]:
        return self._compiled.select_one(root)

    def select_all(self, root: Any) -> List[Any]:
        return list(self._compiled.select(root))

    def __repr__(self) -> str:
        return f"CssSelector({self.pattern!r})"

    def __str__(self) -> str:
        return self.pattern


def compile_selector(pattern: str) -> Selector:
    return CssSelector(pattern)
