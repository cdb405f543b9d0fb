"""Access modes for opened databases.

A mode is chosen once when a database is opened and fixed for the lifetime
of the handle. Each marker class carries a ModeType value which picks the
engine open call and gates mutating operations:

    Mode          | read | write | merge | catch up
    --------------|------|-------|-------|---------
    ReadOnly      | yes  | no    | no    | no
    Secondary     | yes  | no    | no    | yes
    Writeable     | yes  | yes   | yes   | no
    Transactional | yes  | yes   | yes   | no

Python cannot reject a write on a read-only handle at compile time, so the
Database wrapper checks the mode before every mutating call and raises
CapabilityError. The marker classes double as type parameters
(``Database[Writeable]``) for static checkers.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from kv_tables.domain.errors import CapabilityError


class ModeType(Enum):
    """Value-level mode used to select the engine open call."""

    READ_ONLY = "read_only"
    SECONDARY = "secondary"
    WRITEABLE = "writeable"
    TRANSACTIONAL = "transactional"

    @property
    def is_primary(self) -> bool:
        """True for modes that own the database files."""
        return self in (ModeType.WRITEABLE, ModeType.TRANSACTIONAL)

    @property
    def is_writeable(self) -> bool:
        """True if insert and merge are permitted."""
        return self.is_primary

    @property
    def can_catch_up(self) -> bool:
        """True if the handle can pull forward to the primary's state."""
        return self == ModeType.SECONDARY

    @property
    def is_transactional(self) -> bool:
        """True if the handle can begin transactions."""
        return self == ModeType.TRANSACTIONAL

    def require_writeable(self, operation: str) -> None:
        """Raise CapabilityError unless this mode permits writes."""
        if not self.is_writeable:
            raise CapabilityError(self.value, operation)


class Mode:
    """Base class for mode marker types."""

    mode_type: ClassVar[ModeType]

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        if not isinstance(cls.__dict__.get("mode_type"), ModeType):
            raise TypeError(f"{cls.__name__} must define a ModeType")


class ReadOnly(Mode):
    """Database opened for reads only."""

    mode_type = ModeType.READ_ONLY


class Secondary(Mode):
    """Read-only replica that can catch up with its primary."""

    mode_type = ModeType.SECONDARY


class Writeable(Mode):
    """Primary database permitting writes."""

    mode_type = ModeType.WRITEABLE


class Transactional(Mode):
    """Primary transactional database permitting writes and transactions."""

    mode_type = ModeType.TRANSACTIONAL


def mode_type_of(mode: type[Mode] | ModeType) -> ModeType:
    """Resolve a marker class or ModeType to a ModeType."""
    if isinstance(mode, ModeType):
        return mode
    if isinstance(mode, type) and issubclass(mode, Mode):
        return mode.mode_type
    raise TypeError(f"Not a mode: {mode!r}")
