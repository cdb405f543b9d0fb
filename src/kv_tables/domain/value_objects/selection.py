"""Items produced by selective iteration.

A selective scan decodes every key but only decodes values for keys the
caller's predicate accepts. Accepted items arrive as ``Selected`` with the
full entry; the rest arrive as ``Skipped`` carrying only the decoded key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

E = TypeVar("E")
K = TypeVar("K")


@dataclass(frozen=True, slots=True)
class Selected(Generic[E]):
    """An item whose value was decoded."""

    entry: E

    @property
    def key(self) -> Any:
        return self.entry.key()  # type: ignore[attr-defined]

    @property
    def is_selected(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Skipped(Generic[K]):
    """An item rejected by the predicate; the value bytes were not decoded."""

    key: K

    @property
    def is_selected(self) -> bool:
        return False


Selection = Union[Selected[E], Skipped[Any]]


def selected_entries(items: Any) -> list[Any]:
    """Collect the entries of Selected items, dropping Skipped ones."""
    return [item.entry for item in items if item.is_selected]
