"""Store initialization and the LMDB-backed preference store.

An onlygate store is a directory with a specific layout:
    <store_root>/
      store.json       # Store metadata
      prefs/lmdb/      # Gate state (data.mdb, lock.mdb)

Values are msgpack-encoded so integers, strings and booleans keep their
type across process restarts.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import lmdb
import msgpack

from .common import SCHEMA_VERSION, PRODUCER, utc_now_z


logger = logging.getLogger(__name__)

# DBI names
DBI_PREFS = b"prefs"

# Default LMDB map size (64MB - gate state is tiny)
DEFAULT_MAP_SIZE = 64 * 1024 * 1024

_MISSING = object()


class StoreExistsError(Exception):
    """Raised when attempting to initialize a store that already exists."""

    def __init__(self, store_root: Path):
        self.store_root = store_root
        super().__init__(f"Store already exists: {store_root}")


class InvalidStoreError(Exception):
    """Raised when a store is missing or invalid."""

    def __init__(self, store_root: Path, reason: str):
        self.store_root = store_root
        self.reason = reason
        super().__init__(f"Invalid store at {store_root}: {reason}")


def init_store(store_root: Path) -> dict:
    """Initialize a new onlygate store.

    Creates the directory structure and store.json file.

    Args:
        store_root: Root directory for the store.

    Returns:
        The store metadata dict.

    Raises:
        StoreExistsError: If store.json already exists or the directory is not empty.
    """
    store_root = Path(store_root)
    store_json_path = store_root / "store.json"

    if store_json_path.exists():
        raise StoreExistsError(store_root)

    if store_root.exists() and any(store_root.iterdir()):
        raise StoreExistsError(store_root)

    store_root.mkdir(parents=True, exist_ok=True)
    (store_root / "prefs" / "lmdb").mkdir(parents=True, exist_ok=True)

    store_meta = {
        "schema_name": "onlygate.store",
        "schema_version": SCHEMA_VERSION,
        "producer": PRODUCER.copy(),
        "created_at": utc_now_z(),
    }

    with open(store_json_path, "w", encoding="utf-8") as f:
        json.dump(store_meta, f, indent=2)
        f.write("\n")

    logger.info("Initialized store at %s", store_root)
    return store_meta


def load_store(store_root: Path) -> dict:
    """Load and validate store metadata.

    Args:
        store_root: Root directory of the store.

    Returns:
        The store metadata dict.

    Raises:
        InvalidStoreError: If store is missing or invalid.
    """
    store_root = Path(store_root)
    store_json_path = store_root / "store.json"

    if not store_root.exists():
        raise InvalidStoreError(store_root, "directory does not exist")

    if not store_json_path.exists():
        raise InvalidStoreError(store_root, "missing store.json")

    try:
        with open(store_json_path, "r", encoding="utf-8") as f:
            store_meta = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidStoreError(store_root, f"invalid JSON in store.json: {e}")

    if not isinstance(store_meta, dict):
        raise InvalidStoreError(store_root, "store.json root is not an object")

    if store_meta.get("schema_name") != "onlygate.store":
        raise InvalidStoreError(
            store_root,
            f"invalid schema_name: {store_meta.get('schema_name')}"
        )

    if store_meta.get("schema_version") != SCHEMA_VERSION:
        raise InvalidStoreError(
            store_root,
            f"unsupported schema_version: {store_meta.get('schema_version')}"
        )

    return store_meta


def ensure_store(store_root: Path) -> dict:
    """Ensure a store exists, initializing if necessary.

    Args:
        store_root: Root directory for the store.

    Returns:
        The store metadata dict.
    """
    store_root = Path(store_root)
    if (store_root / "store.json").exists():
        return load_store(store_root)
    return init_store(store_root)


def is_valid_store(store_root: Path) -> bool:
    """Check if a directory is a valid onlygate store."""
    try:
        load_store(store_root)
        return True
    except (InvalidStoreError, FileNotFoundError):
        return False


class PreferenceStore:
    """Durable typed key-value map backed by LMDB.

    Missing keys are never an error: every getter takes a default.
    """

    def __init__(self, store_root: Path, readonly: bool = False):
        """Initialize the preference store.

        Args:
            store_root: Root directory of the onlygate store.
            readonly: Open in read-only mode.
        """
        self.store_root = Path(store_root)
        self.prefs_dir = self.store_root / "prefs" / "lmdb"
        self.readonly = readonly
        self._env: Optional[lmdb.Environment] = None
        self._dbi = None

    def open(self) -> "PreferenceStore":
        """Open the LMDB environment.

        Raises:
            InvalidStoreError: If the store is missing and readonly is set,
                or if store.json is invalid.
        """
        if self._env is not None:
            return self

        if self.readonly:
            load_store(self.store_root)
            if not (self.prefs_dir / "data.mdb").exists():
                raise InvalidStoreError(self.store_root, "missing prefs database")
        else:
            ensure_store(self.store_root)
            self.prefs_dir.mkdir(parents=True, exist_ok=True)

        self._env = lmdb.open(
            str(self.prefs_dir),
            map_size=DEFAULT_MAP_SIZE,
            max_dbs=1,
            readonly=self.readonly,
            create=not self.readonly,
            subdir=True,
        )
        self._dbi = self._env.open_db(DBI_PREFS, create=not self.readonly)
        logger.debug("Opened preference store at %s", self.prefs_dir)
        return self

    def close(self) -> None:
        """Close the LMDB environment."""
        if self._env is not None:
            self._env.close()
            self._env = None
            self._dbi = None

    def __enter__(self) -> "PreferenceStore":
        return self.open()

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        """Check if the environment is open."""
        return self._env is not None

    @property
    def env(self) -> lmdb.Environment:
        """Get the LMDB environment."""
        if self._env is None:
            raise RuntimeError("Preference store not open")
        return self._env

    def _get(self, key: bytes) -> Any:
        with self.env.begin(db=self._dbi) as txn:
            data = txn.get(key)
        if data is None:
            return _MISSING
        return msgpack.unpackb(data)

    def _put(self, key: bytes, value: Any) -> None:
        with self.env.begin(write=True, db=self._dbi) as txn:
            txn.put(key, msgpack.packb(value))

    def get_int(self, key: bytes, default: int = 0) -> int:
        value = self._get(key)
        if value is _MISSING:
            return default
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Value at {key!r} is not an int: {value!r}")
        return value

    def set_int(self, key: bytes, value: int) -> None:
        self._put(key, int(value))

    def get_string(self, key: bytes, default: Optional[str] = None) -> Optional[str]:
        value = self._get(key)
        if value is _MISSING:
            return default
        if not isinstance(value, str):
            raise TypeError(f"Value at {key!r} is not a string: {value!r}")
        return value

    def set_string(self, key: bytes, value: str) -> None:
        self._put(key, str(value))

    def get_bool(self, key: bytes, default: bool = False) -> bool:
        value = self._get(key)
        if value is _MISSING:
            return default
        if not isinstance(value, bool):
            raise TypeError(f"Value at {key!r} is not a bool: {value!r}")
        return value

    def set_bool(self, key: bytes, value: bool) -> None:
        self._put(key, bool(value))

    def contains(self, key: bytes) -> bool:
        """Check whether a key is stored."""
        with self.env.begin(db=self._dbi) as txn:
            return txn.get(key) is not None

    def remove(self, *keys: bytes) -> None:
        """Remove keys in a single write transaction. Missing keys are ignored."""
        with self.env.begin(write=True, db=self._dbi) as txn:
            for key in keys:
                txn.delete(key)

    def clear_all(self) -> None:
        """Remove every key from the store."""
        with self.env.begin(write=True) as txn:
            txn.drop(self._dbi, delete=False)

    def keys(self) -> list[bytes]:
        """Return all stored keys in sorted order."""
        with self.env.begin(db=self._dbi) as txn:
            cursor = txn.cursor()
            return [bytes(key) for key in cursor.iternext(keys=True, values=False)]
