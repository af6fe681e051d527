"""Exception hierarchy shared by the parser adapter, config layer, registry and engine."""

from __future__ import annotations


class HypError(Exception):
    """Base class for every error raised by hyp."""


class ParseError(HypError):
    """Raised when a source file cannot be turned into a syntax tree.

    A parse failure is fatal for that one file only; it is never reported
    as a :class:`~hyp.violation.Violation`.
    """

    def __init__(
        self,
        message: str,
        *,
        file_path: str | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.file_path = file_path
        self.line = line
        self.column = column
        location = ""
        if file_path is not None:
            location = file_path
            if line is not None:
                location += f":{line}"
                if column is not None:
                    location += f":{column}"
            location += ": "
        super().__init__(f"{location}{message}")


class ConfigError(HypError):
    """Raised when a configuration payload does not match the expected shape."""

    def __init__(self, message: str, *, checker_id: str | None = None) -> None:
        self.checker_id = checker_id
        prefix = f"{checker_id}: " if checker_id else ""
        super().__init__(f"{prefix}{message}")


class CheckerRuntimeError(HypError):
    """Wraps an unexpected exception raised by a checker while analyzing an item."""

    def __init__(self, checker_id: str, file_path: str, cause: BaseException) -> None:
        self.checker_id = checker_id
        self.file_path = file_path
        self.cause = cause
        super().__init__(f"{checker_id} failed on {file_path}: {type(cause).__name__}: {cause}")


class RegistrationError(HypError):
    """Raised at startup when the checker catalogue is inconsistent.

    Duplicate codes, empty ``target_items`` and similar plugin-set mistakes
    are programming errors, so this is the one category that propagates.
    """
