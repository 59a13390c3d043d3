"""Gate evaluation requests and the fluent builder that assembles them.

The builder performs no decision logic; run() hands the finished GateSpec
to the engine.

Usage:
    engine.only("welcome", times=3) \\
        .on_do(show_tip) \\
        .on_done(hide_tip) \\
        .run()

    engine.only_once("release-notes").version("2.0").on_do(show_notes).run()
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

from .keys import KEY_DELIMITER


Action = Callable[[], Any]


def noop() -> None:
    """Default action for unset callback slots."""


class InvalidGateSpecError(ValueError):
    """Raised when a gate request has an unusable name or limit.

    Attributes:
        name: Gate name, when the name itself was valid.
        argument: Which argument was rejected, "name" or "limit".
    """

    def __init__(self, message: str, name: Optional[str] = None, argument: str = "name"):
        self.name = name
        self.argument = argument
        super().__init__(message)


@dataclass(frozen=True)
class GateSpec:
    """One evaluation request for a gate.

    Attributes:
        name: Gate name (non-empty).
        limit: Number of times on_do may run; 0 means always done.
        on_do: Run while the gate has budget left.
        on_done: Run once the budget is exhausted.
        on_last_do: Run once, on the call that exhausts the budget.
        on_before_done: Run once, before the first on_done.
        version: Version tag. Empty means the build version; None skips
            the version check entirely.
        marking: Annotation stored on first activation (str() is applied).
    """

    name: str
    limit: int = 1
    on_do: Action = field(default=noop, compare=False)
    on_done: Action = field(default=noop, compare=False)
    on_last_do: Action = field(default=noop, compare=False)
    on_before_done: Action = field(default=noop, compare=False)
    version: Optional[str] = ""
    marking: Any = None

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise InvalidGateSpecError("Gate name must be a non-empty string")
        if KEY_DELIMITER in self.name:
            raise InvalidGateSpecError(
                f"Gate name must not contain the key delimiter: {self.name!r}"
            )
        if isinstance(self.limit, bool) or not isinstance(self.limit, int):
            raise InvalidGateSpecError(
                f"Gate limit must be an integer: {self.limit!r}", name=self.name, argument="limit"
            )
        if self.limit < 0:
            raise InvalidGateSpecError(
                f"Gate limit must be non-negative: {self.limit}", name=self.name, argument="limit"
            )
        for slot in ("on_do", "on_done", "on_last_do", "on_before_done"):
            if not callable(getattr(self, slot)):
                raise TypeError(f"{slot} must be callable")
        if self.version is not None and not isinstance(self.version, str):
            raise TypeError(f"version must be a string or None: {self.version!r}")

    @property
    def checks_version(self) -> bool:
        return self.version is not None


class GateBuilder:
    """Fluent assembly of a GateSpec, bound to the engine that runs it."""

    def __init__(self, engine: "GateEngine", name: str, times: int = 1):  # noqa: F821
        self.engine = engine
        self._spec = GateSpec(name=name, limit=times)

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def times(self) -> int:
        return self._spec.limit

    def _set(self, **changes) -> "GateBuilder":
        self._spec = replace(self._spec, **changes)
        return self

    def _set_action(self, slot: str, action: Action) -> "GateBuilder":
        return self._set(**{slot: action})

    def on_do(self, action: Action) -> "GateBuilder":
        """Run action only as many times as the limit allows."""
        return self._set_action("on_do", action)

    def on_done(self, action: Action) -> "GateBuilder":
        """Run action on every call after the limit is reached."""
        return self._set_action("on_done", action)

    def on_last_do(self, action: Action) -> "GateBuilder":
        """Run action once, right after the last permitted on_do."""
        return self._set_action("on_last_do", action)

    def on_before_done(self, action: Action) -> "GateBuilder":
        """Run action once, before the first on_done."""
        return self._set_action("on_before_done", action)

    def version(self, version: str) -> "GateBuilder":
        """Change the version tag; a different tag clears the run history."""
        return self._set(version=version)

    def mark(self, marking: Any) -> "GateBuilder":
        """Attach a marking, stored when the gate is first activated."""
        return self._set(marking=marking)

    def build(self) -> GateSpec:
        return self._spec

    def run(self) -> None:
        self.engine.evaluate(self._spec)
