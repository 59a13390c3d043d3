"""onlygate: run an action only N times, ever.

Gate state is persisted in an LMDB store so the budget survives restarts.
"""

from .common import VERSION
from .debug import DebugOverride
from .engine import GateEngine, StoreNotInitializedError
from .spec import GateBuilder, GateSpec, InvalidGateSpecError
from .state import GateState, GateStateStore
from .store import (
    InvalidStoreError,
    PreferenceStore,
    StoreExistsError,
    ensure_store,
    init_store,
    load_store,
)

__version__ = VERSION

__all__ = [
    "DebugOverride",
    "GateBuilder",
    "GateEngine",
    "GateSpec",
    "GateState",
    "GateStateStore",
    "InvalidGateSpecError",
    "InvalidStoreError",
    "PreferenceStore",
    "StoreExistsError",
    "StoreNotInitializedError",
    "ensure_store",
    "init_store",
    "load_store",
]
