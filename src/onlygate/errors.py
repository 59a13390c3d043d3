"""Centralized error reporting for the onlygate CLI.

This module provides:
- Standard error codes
- Error envelope format for --json output
- Helper functions for consistent error reporting
"""

import json
import sys
from dataclasses import dataclass, field
from typing import Optional


# =============================================================================
# Error Codes
# =============================================================================

# Store errors
STORE_NOT_FOUND = "STORE_NOT_FOUND"
STORE_INVALID = "STORE_INVALID"
STORE_EXISTS = "STORE_EXISTS"

# Gate errors
GATE_NOT_FOUND = "GATE_NOT_FOUND"

# Input errors
INVALID_ARGUMENT = "INVALID_ARGUMENT"

# =============================================================================
# Error Envelope
# =============================================================================


@dataclass
class OnlyGateError:
    """Structured error for CLI output.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable error message.
        hints: Actionable suggestions for resolving the error.
        details: Context-specific error details.
    """

    code: str
    message: str
    hints: list[str] = field(default_factory=list)
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to error envelope dict."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "hints": self.hints,
                "details": self.details,
            }
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def print_json(self, file=None) -> None:
        """Print error as JSON to file (default: stderr)."""
        if file is None:
            file = sys.stderr
        print(self.to_json(), file=file)

    def print_text(self, file=None) -> None:
        """Print error as human-readable text to file (default: stderr)."""
        if file is None:
            file = sys.stderr
        print(f"Error: {self.message}", file=file)
        for hint in self.hints:
            print(f"  Hint: {hint}", file=file)


# =============================================================================
# Factory Functions
# =============================================================================


def store_not_found(path: str) -> OnlyGateError:
    return OnlyGateError(
        code=STORE_NOT_FOUND,
        message=f"Store does not exist: {path}",
        hints=[
            f"Run: onlygate init --store {path}",
            "Check that the path is correct",
        ],
        details={"path": path},
    )


def store_invalid(path: str, reason: str = "") -> OnlyGateError:
    msg = f"Invalid store: {path}"
    if reason:
        msg += f" ({reason})"
    return OnlyGateError(
        code=STORE_INVALID,
        message=msg,
        hints=[
            "Ensure the store was initialized with 'onlygate init'",
            "Check store.json exists and is valid",
        ],
        details={"path": path, "reason": reason},
    )


def store_exists(path: str) -> OnlyGateError:
    return OnlyGateError(
        code=STORE_EXISTS,
        message=f"Store already exists: {path}",
        hints=[
            "Use a different path",
            "Remove the existing store if you want to reinitialize",
        ],
        details={"path": path},
    )


def gate_not_found(name: str, store: Optional[str] = None) -> OnlyGateError:
    hints = ["Run: onlygate list"]
    if store:
        hints[0] = f"Run: onlygate list --store {store}"
    return OnlyGateError(
        code=GATE_NOT_FOUND,
        message=f"Gate not found: {name}",
        hints=hints,
        details={"name": name, "store": store} if store else {"name": name},
    )


def invalid_argument(arg_name: str, value: str, reason: str = "") -> OnlyGateError:
    msg = f"Invalid argument '{arg_name}': {value}"
    if reason:
        msg += f" ({reason})"
    return OnlyGateError(
        code=INVALID_ARGUMENT,
        message=msg,
        hints=[
            "Check the argument value",
            "Run: onlygate <command> --help",
        ],
        details={"argument": arg_name, "value": value, "reason": reason},
    )


# =============================================================================
# Output Helper
# =============================================================================


def print_error(
    error: OnlyGateError,
    json_mode: bool = False,
    file=None,
) -> None:
    """Print error in appropriate format.

    Args:
        error: The error to print.
        json_mode: If True, print as JSON envelope. If False, print as text.
        file: Output file (default: stderr).
    """
    if json_mode:
        error.print_json(file)
    else:
        error.print_text(file)
