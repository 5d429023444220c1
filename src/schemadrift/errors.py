"""Error types for the schema drift pipeline.

Error code ranges:
- 1xxx: Input (unreadable or unparsable files)
- 2xxx: Config
- 9xxx: Internal (broken contracts between stages)

Input errors are recovered per file and reported as warnings on the stage
result. Internal errors are raised immediately.
"""
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Input (1xxx)
    FILE_UNREADABLE = 1001
    FILE_UNPARSABLE = 1002

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_ROOT_NOT_FOUND = 2003

    # Internal (9xxx)
    UNKNOWN_ELEMENT_KEY = 9001
    DUPLICATE_CANDIDATE = 9002


@dataclass(frozen=True)
class SchemaDriftError(Exception):
    """Base error with structured context for reports and logs."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'FILE_UNPARSABLE')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class SyntaxParseError(SchemaDriftError):
    """A source file could not be read or produced a malformed syntax tree."""

    @classmethod
    def unreadable(cls, path: str, reason: str) -> "SyntaxParseError":
        return cls(
            code=ErrorCode.FILE_UNREADABLE,
            message=f"Cannot read {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def malformed(cls, path: str, line: int) -> "SyntaxParseError":
        return cls(
            code=ErrorCode.FILE_UNPARSABLE,
            message=f"Syntax error in {path} near line {line}",
            details={"path": path, "line": line},
        )


class ConfigurationError(SchemaDriftError):
    """Invalid configuration values."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, name: str, value: Any, reason: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{name}': {reason}",
            details={"field": name, "value": str(value), "reason": reason},
        )

    @classmethod
    def root_not_found(cls, path: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_ROOT_NOT_FOUND,
            message=f"Project root does not exist: {path}",
            details={"path": path},
        )


class CrossReferenceError(SchemaDriftError):
    """A stage referenced an element the schema mapping does not contain."""

    @classmethod
    def unknown_element(cls, key: str, source: str) -> "CrossReferenceError":
        return cls(
            code=ErrorCode.UNKNOWN_ELEMENT_KEY,
            message=f"Usage from {source} references unknown element '{key}'",
            details={"key": key, "source": source},
        )

    @classmethod
    def duplicate_candidate(cls, key: str) -> "CrossReferenceError":
        return cls(
            code=ErrorCode.DUPLICATE_CANDIDATE,
            message=f"Element '{key}' was assigned to more than one migration phase",
            details={"key": key},
        )
