"""Persisted gate state and its mapping onto the preference store.

A gate's state is created implicitly (all defaults) on first read and is
removed only by an explicit clear.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .keys import (
    FIELD_BEFORE_DONE,
    FIELD_COUNT,
    FIELD_MARKING,
    FIELD_VERSION,
    gate_keys,
    make_gate_key,
    parse_gate_key,
)
from .store import PreferenceStore


logger = logging.getLogger(__name__)


@dataclass
class GateState:
    """Snapshot of one gate's persisted fields."""

    name: str
    count: int
    version: str
    before_done_fired: bool
    marking: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "count": self.count,
            "version": self.version,
            "before_done_fired": self.before_done_fired,
            "marking": self.marking,
        }


class GateStateStore:
    """Reads and writes gate fields through a PreferenceStore."""

    def __init__(self, store: PreferenceStore, build_version: str):
        """Initialize the state mapping.

        Args:
            store: Open preference store.
            build_version: Version tag assumed for gates that never stored one.
        """
        self.store = store
        self.build_version = build_version

    def load(self, name: str) -> GateState:
        """Read every field of a gate, applying defaults for missing values."""
        return GateState(
            name=name,
            count=self.get_count(name),
            version=self.get_version(name),
            before_done_fired=self.is_before_done_fired(name),
            marking=self.get_marking(name),
        )

    def exists(self, name: str) -> bool:
        """Check whether any field of a gate is persisted."""
        return any(self.store.contains(key) for key in gate_keys(name))

    # Count

    def get_count(self, name: str) -> int:
        return self.store.get_int(make_gate_key(name, FIELD_COUNT), 0)

    def set_count(self, name: str, count: int) -> None:
        if count < 0:
            raise ValueError(f"Gate count must be non-negative: {count}")
        self.store.set_int(make_gate_key(name, FIELD_COUNT), count)

    # Version

    def resolve_version(self, version: Optional[str]) -> str:
        """Map an empty or missing version to the build version."""
        return version if version else self.build_version

    def get_version(self, name: str) -> str:
        return self.store.get_string(
            make_gate_key(name, FIELD_VERSION), self.build_version
        )

    def set_version(self, name: str, version: str) -> None:
        self.store.set_string(make_gate_key(name, FIELD_VERSION), version)

    def affect_version(self, name: str, version: Optional[str]) -> bool:
        """Reset a gate's history when its version tag changes.

        The count and the before-done flag are reset together with the new
        tag, so the next cycle fires its one-shot hooks again. A gate with
        no stored tag is compared against the build version and gets the
        requested tag stored.

        Args:
            name: Gate name.
            version: Requested version; empty means the build version.

        Returns:
            True if the tag changed and history was reset.
        """
        requested = self.resolve_version(version)
        stored = self.store.get_string(make_gate_key(name, FIELD_VERSION), None)
        current = stored if stored is not None else self.build_version
        if current == requested:
            # Pin the tag so a later build version is seen as a change
            if stored is None:
                self.set_version(name, requested)
            return False

        self.set_count(name, 0)
        self.set_before_done_fired(name, False)
        self.set_version(name, requested)
        logger.info(
            "Gate %r version changed %r -> %r, history reset", name, current, requested
        )
        return True

    # Before-done flag

    def is_before_done_fired(self, name: str) -> bool:
        return self.store.get_bool(make_gate_key(name, FIELD_BEFORE_DONE), False)

    def set_before_done_fired(self, name: str, fired: bool = True) -> None:
        key = make_gate_key(name, FIELD_BEFORE_DONE)
        if fired:
            self.store.set_bool(key, True)
        else:
            self.store.remove(key)

    # Marking

    def get_marking(self, name: str) -> Optional[str]:
        return self.store.get_string(make_gate_key(name, FIELD_MARKING), None)

    def mark(self, name: str, marking: Any) -> None:
        """Store str(marking) for a gate. None leaves the marking untouched."""
        if marking is None:
            return
        self.store.set_string(make_gate_key(name, FIELD_MARKING), str(marking))

    # Lifecycle

    def clear(self, name: str) -> None:
        """Remove all four fields of a gate."""
        self.store.remove(*gate_keys(name))
        logger.debug("Cleared gate %r", name)

    def clear_all(self) -> None:
        self.store.clear_all()
        logger.debug("Cleared all gates")

    def names(self) -> list[str]:
        """List the names of gates with any persisted field."""
        names = set()
        for key in self.store.keys():
            try:
                name, _ = parse_gate_key(key)
            except ValueError:
                continue
            names.add(name)
        return sorted(names)
