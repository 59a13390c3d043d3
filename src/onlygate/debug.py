"""Debug bypass flags.

The bypass is effective only when the host build is debuggable AND the
caller enabled it, so toggling the flag in a release build has no effect.
"""

from dataclasses import dataclass


@dataclass
class DebugOverride:
    """Flag pair that forces the primary action without touching state.

    Attributes:
        debuggable_build: Fixed at initialization from the host build.
        bypass_enabled: Toggled explicitly by the caller.
    """

    debuggable_build: bool = False
    bypass_enabled: bool = False

    @property
    def active(self) -> bool:
        """Effective bypass: debuggable build and bypass enabled."""
        return self.debuggable_build and self.bypass_enabled

    def set_bypass(self, enabled: bool) -> None:
        self.bypass_enabled = bool(enabled)

    def to_dict(self) -> dict:
        return {
            "debuggable_build": self.debuggable_build,
            "bypass_enabled": self.bypass_enabled,
            "active": self.active,
        }
