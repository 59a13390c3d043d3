"""Key derivation for persisted gate fields.

Every gate owns four independently addressable keys:
    v1 <US> <name> <US>                -> count
    v1 <US> <name> <US> version        -> version tag
    v1 <US> <name> <US> onBeforeDone   -> before-done flag
    v1 <US> <name> <US> marking        -> marking annotation

<US> is the ASCII unit separator, so gate names containing "_" can never
collide with another gate's field keys.
"""

# Key delimiter for LMDB keys
KEY_DELIMITER = "\x1f"  # Unit separator

# Key prefix for schema versioning
KEY_PREFIX = "v1"

# Field names
FIELD_COUNT = ""
FIELD_VERSION = "version"
FIELD_BEFORE_DONE = "onBeforeDone"
FIELD_MARKING = "marking"

ALL_FIELDS = [
    FIELD_COUNT,
    FIELD_VERSION,
    FIELD_BEFORE_DONE,
    FIELD_MARKING,
]


def make_gate_key(name: str, field: str = FIELD_COUNT) -> bytes:
    """Create a store key for one field of a gate.

    Args:
        name: Gate name.
        field: Field name (one of ALL_FIELDS).

    Returns:
        UTF-8 encoded key bytes.
    """
    if field not in ALL_FIELDS:
        raise ValueError(f"Unknown gate field: {field!r}")
    if KEY_DELIMITER in name:
        raise ValueError(f"Gate name contains a key delimiter: {name!r}")
    return KEY_DELIMITER.join([KEY_PREFIX, name, field]).encode("utf-8")


def parse_gate_key(key: bytes) -> tuple[str, str]:
    """Parse a store key into (name, field).

    Args:
        key: UTF-8 encoded key bytes.

    Returns:
        Tuple of (gate name, field name).

    Raises:
        ValueError: If the key was not produced by make_gate_key.
    """
    parts = key.decode("utf-8").split(KEY_DELIMITER)
    if len(parts) != 3 or parts[0] != KEY_PREFIX:
        raise ValueError(f"Not a gate key: {key!r}")
    return parts[1], parts[2]


def gate_keys(name: str) -> list[bytes]:
    """Return every key owned by a gate."""
    return [make_gate_key(name, field) for field in ALL_FIELDS]
