"""Gate evaluation engine.

A gate runs its primary action only up to N times in total, persisted
across restarts, then switches to its done action for good. Two one-shot
hooks mark the transition: on_last_do fires on the call that uses up the
budget, on_before_done fires right before the first on_done.

Evaluation order for one call:
    1. Debug bypass: run on_do, touch nothing.
    2. Marking: stored if the gate had count 0 at the start of the call.
    3. Version check: a different version tag resets the history.
    4. Count < limit: increment, on_do, then on_last_do on the last one.
       Otherwise: on_before_done (once), then on_done.

Calls for the same gate name are serialized by a per-name lock, so the
read-check-write sequence is atomic within a process. The decision and
its persisted effects are made under the lock; callbacks run after it is
released, so a callback may evaluate or administer any gate, its own
included. A per-name lock lives only while some call holds or waits on it.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from .debug import DebugOverride
from .spec import Action, GateBuilder, GateSpec, noop
from .state import GateState, GateStateStore
from .store import PreferenceStore


logger = logging.getLogger(__name__)


class StoreNotInitializedError(RuntimeError):
    """Raised when the engine is used before a store was bound to it."""

    def __init__(self):
        super().__init__(
            "Gate engine has no store; call GateEngine.init(store, build_version) first"
        )


class GateEngine:
    """Decides which callbacks of a gate fire and persists the outcome."""

    def __init__(
        self,
        store: Optional[PreferenceStore] = None,
        build_version: str = "",
        debuggable: bool = False,
    ):
        """Initialize the engine.

        Args:
            store: Preference store; opened if not already open. May be
                bound later with init().
            build_version: Version tag assumed when a gate asks for the
                build version.
            debuggable: Whether the host build is a debug build.
        """
        self._states: Optional[GateStateStore] = None
        self.debug = DebugOverride(debuggable_build=debuggable)
        # name -> [lock, number of callers holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._locks_lock = threading.Lock()
        if store is not None:
            self.init(store, build_version, debuggable)

    def init(
        self,
        store: PreferenceStore,
        build_version: str = "",
        debuggable: Optional[bool] = None,
    ) -> "GateEngine":
        """Bind a store and the build information to this engine."""
        if not store.is_open:
            store.open()
        self._states = GateStateStore(store, build_version)
        if debuggable is not None:
            self.debug.debuggable_build = bool(debuggable)
        logger.debug(
            "Gate engine initialized (build_version=%r, debuggable=%s)",
            build_version,
            self.debug.debuggable_build,
        )
        return self

    @property
    def states(self) -> GateStateStore:
        if self._states is None:
            raise StoreNotInitializedError()
        return self._states

    @property
    def build_version(self) -> str:
        return self.states.build_version

    @contextmanager
    def _locked(self, name: str) -> Iterator[None]:
        """Hold the lock guarding one gate name."""
        with self._locks_lock:
            entry = self._locks.get(name)
            if entry is None:
                entry = self._locks[name] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[name]

    # =========================================================================
    # Debug bypass
    # =========================================================================

    def set_debug_bypass(self, enabled: bool) -> "GateEngine":
        """Run on_do unconditionally while enabled (debuggable builds only)."""
        self.debug.set_bypass(enabled)
        if enabled and not self.debug.debuggable_build:
            logger.warning("Debug bypass requested on a non-debuggable build; ignored")
        return self

    def is_debug_mode(self) -> bool:
        return self.debug.active

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, spec: GateSpec) -> None:
        """Evaluate one gate request.

        Callback exceptions propagate to the caller. The count and the
        before-done flag are written before any callback runs, so a failing
        on_do still uses up a repetition.
        """
        states = self.states
        if self.debug.active:
            logger.info("Debug bypass active, running on_do for gate %r", spec.name)
            spec.on_do()
            return

        with self._locked(spec.name):
            actions = self._decide(states, spec)

        for action in actions:
            action()

    def _decide(self, states: GateStateStore, spec: GateSpec) -> list[Action]:
        """Persist the outcome of one call and return the callbacks to run."""
        if spec.marking is not None and states.get_count(spec.name) == 0:
            states.mark(spec.name, spec.marking)

        if spec.checks_version:
            states.affect_version(spec.name, spec.version)

        count = states.get_count(spec.name)
        if count < spec.limit:
            states.set_count(spec.name, count + 1)
            logger.debug("Gate %r: do (%d/%d)", spec.name, count + 1, spec.limit)
            if count + 1 == spec.limit:
                logger.debug("Gate %r: last do", spec.name)
                return [spec.on_do, spec.on_last_do]
            return [spec.on_do]

        actions = []
        if not states.is_before_done_fired(spec.name):
            states.set_before_done_fired(spec.name)
            logger.debug("Gate %r: before done", spec.name)
            actions.append(spec.on_before_done)
        logger.debug("Gate %r: done (count=%d)", spec.name, count)
        actions.append(spec.on_done)
        return actions

    def on_do(
        self,
        name: str,
        times: int,
        on_do: Action,
        on_done: Action = noop,
        on_last_do: Action = noop,
        on_before_done: Action = noop,
        version: Optional[str] = None,
    ) -> "GateEngine":
        """Run on_do only as many times as necessary.

        Args:
            name: Gate name.
            times: How many times on_do may run.
            on_do: Primary action.
            on_done: Action for every call after the limit is reached.
            on_last_do: One-shot action after the last on_do.
            on_before_done: One-shot action before the first on_done.
            version: Version tag; "" means the build version, None skips
                the version check.
        """
        self.evaluate(
            GateSpec(
                name=name,
                limit=times,
                on_do=on_do,
                on_done=on_done,
                on_last_do=on_last_do,
                on_before_done=on_before_done,
                version=version,
            )
        )
        return self

    def on_do_once(self, name: str, on_do: Action, on_done: Action = noop,
                   on_last_do: Action = noop, on_before_done: Action = noop,
                   version: Optional[str] = "") -> "GateEngine":
        """Run on_do only once."""
        return self.on_do(name, 1, on_do, on_done, on_last_do, on_before_done, version)

    def on_do_twice(self, name: str, on_do: Action, on_done: Action = noop,
                    on_last_do: Action = noop, on_before_done: Action = noop,
                    version: Optional[str] = "") -> "GateEngine":
        """Run on_do only twice."""
        return self.on_do(name, 2, on_do, on_done, on_last_do, on_before_done, version)

    def on_do_thrice(self, name: str, on_do: Action, on_done: Action = noop,
                     on_last_do: Action = noop, on_before_done: Action = noop,
                     version: Optional[str] = "") -> "GateEngine":
        """Run on_do only thrice."""
        return self.on_do(name, 3, on_do, on_done, on_last_do, on_before_done, version)

    # =========================================================================
    # Builders
    # =========================================================================

    def only(self, name: str, times: int) -> GateBuilder:
        return GateBuilder(self, name, times)

    def only_once(self, name: str) -> GateBuilder:
        return GateBuilder(self, name, 1)

    def only_twice(self, name: str) -> GateBuilder:
        return GateBuilder(self, name, 2)

    def only_thrice(self, name: str) -> GateBuilder:
        return GateBuilder(self, name, 3)

    # =========================================================================
    # Administrative surface
    # =========================================================================

    def get_count(self, name: str) -> int:
        return self.states.get_count(name)

    def set_count(self, name: str, count: int) -> None:
        states = self.states
        with self._locked(name):
            states.set_count(name, count)

    def get_marking(self, name: str) -> Optional[str]:
        return self.states.get_marking(name)

    def mark(self, name: str, marking: Any) -> None:
        """Overwrite a gate's marking regardless of its count."""
        states = self.states
        with self._locked(name):
            states.mark(name, marking)

    set_marking = mark

    def get_state(self, name: str) -> GateState:
        return self.states.load(name)

    def has_gate(self, name: str) -> bool:
        return self.states.exists(name)

    def list_gates(self) -> list[str]:
        return self.states.names()

    def clear_gate(self, name: str) -> None:
        """Forget everything about a gate; the next call is a first activation."""
        states = self.states
        with self._locked(name):
            states.clear(name)

    def clear_all_gates(self) -> None:
        self.states.clear_all()
