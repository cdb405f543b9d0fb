"""Table and partition registration.

TableConfig collects the entry types a database serves and derives the
partition set handed to the engine when the database is opened:

- Named entries contribute a PartitionDescriptor carrying their prefix
  extractor length (from Indexed.index_length) and merge operator.
- Unnamed entries contribute their options to the default partition.

A TableConfig is consumed by the open call and cannot be reused; build a new
one for every open.
"""

from __future__ import annotations

from typing import Iterable

from kv_tables.domain.entities.entry import Entry, is_indexed, validate_index_length
from kv_tables.domain.errors import ConfigurationError, DuplicatePartitionError
from kv_tables.domain.value_objects.partition import (
    DatabaseOptions,
    PartitionDescriptor,
    PartitionOptions,
)
from kv_tables.infrastructure.config import get_settings
from kv_tables.infrastructure.logging import get_logger

logger = get_logger(__name__)


def partition_options_for(entry_type: type[Entry]) -> PartitionOptions:
    """Derive partition tuning options from an entry type's contracts."""
    prefix_length = validate_index_length(entry_type) if is_indexed(entry_type) else None
    return PartitionOptions(
        prefix_length=prefix_length,
        merge_operator=entry_type.associative_merge(),
    )


class TableConfig:
    """Registry of entry types and the partitions they need.

    Usage:
        config = TableConfig().add(Simple).add(Score)
        db = Database.open(config, path)
    """

    def __init__(
        self,
        create_if_missing: bool | None = None,
        create_missing_partitions: bool | None = None,
    ) -> None:
        """Create an empty config.

        Args:
            create_if_missing: Create the database if absent. None uses the
                configured engine default.
            create_missing_partitions: Create registered partitions that do
                not exist yet. None uses the configured engine default.
        """
        self._create_if_missing = create_if_missing
        self._create_missing_partitions = create_missing_partitions
        self._entry_types: list[type[Entry]] = []
        self._partitions: dict[str, PartitionDescriptor] = {}
        self._default_options = PartitionOptions()
        self._default_owner: type[Entry] | None = None
        self._consumed = False

    @classmethod
    def for_tables(cls, *entry_types: type[Entry], **kwargs: bool | None) -> TableConfig:
        """Build a config registering every given entry type."""
        config = cls(**kwargs)
        for entry_type in entry_types:
            config.add(entry_type)
        return config

    @property
    def entry_types(self) -> tuple[type[Entry], ...]:
        return tuple(self._entry_types)

    @property
    def partition_names(self) -> tuple[str, ...]:
        return tuple(self._partitions)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def add(self, entry_type: type[Entry]) -> TableConfig:
        """Register an entry type.

        Args:
            entry_type: An Entry subclass, optionally also Indexed.

        Returns:
            This config, for chaining.

        Raises:
            DuplicatePartitionError: If the partition name is already taken.
            ConfigurationError: If the config was consumed, the index length
                is invalid, or default partition options conflict.
        """
        if self._consumed:
            raise ConfigurationError("Table config already consumed")
        if not (isinstance(entry_type, type) and issubclass(entry_type, Entry)):
            raise ConfigurationError(f"Not an Entry type: {entry_type!r}")

        options = partition_options_for(entry_type)

        if entry_type.name is not None:
            if entry_type.name in self._partitions:
                logger.warning(
                    "duplicate_partition_rejected",
                    partition=entry_type.name,
                    entry_type=entry_type.__name__,
                )
                raise DuplicatePartitionError(entry_type.name)
            self._partitions[entry_type.name] = PartitionDescriptor(entry_type.name, options)
        else:
            self._merge_default_options(entry_type, options)

        self._entry_types.append(entry_type)
        return self

    def extend(self, entry_types: Iterable[type[Entry]]) -> TableConfig:
        for entry_type in entry_types:
            self.add(entry_type)
        return self

    def _merge_default_options(
        self, entry_type: type[Entry], options: PartitionOptions
    ) -> None:
        # The default partition holds one set of options; unnamed tables must agree.
        if options.is_default():
            return
        if self._default_owner is None or self._default_options == options:
            self._default_options = options
            self._default_owner = entry_type
            return
        raise ConfigurationError(
            f"{entry_type.__name__} needs default partition options {options} "
            f"which conflict with {self._default_owner.__name__}'s {self._default_options}"
        )

    def consume(self) -> tuple[DatabaseOptions, list[PartitionDescriptor]]:
        """Hand over the database options and partition descriptors.

        Raises:
            ConfigurationError: If called more than once.
        """
        if self._consumed:
            raise ConfigurationError("Table config already consumed")
        self._consumed = True

        engine_config = get_settings().engine
        options = DatabaseOptions(
            create_if_missing=(
                engine_config.create_if_missing
                if self._create_if_missing is None
                else self._create_if_missing
            ),
            create_missing_partitions=(
                engine_config.create_missing_partitions
                if self._create_missing_partitions is None
                else self._create_missing_partitions
            ),
            default=self._default_options,
        )
        return options, list(self._partitions.values())

    def __repr__(self) -> str:
        names = ", ".join(t.__name__ for t in self._entry_types)
        return f"TableConfig([{names}], consumed={self._consumed})"
