from __future__ import annotations

from .outcomes import ServerNotice, fatal_remediation


class FatalEngineError(RuntimeError):
    """Unrecoverable service response. The only error that escapes `InscriptionEngine.run`."""

    def __init__(self, code: str, message: str = "", *, remediation: str = "") -> None:
        self.code = code
        self.message = message
        self.remediation = remediation or fatal_remediation(code, message=message)
        detail = f": {message}" if message else ""
        super().__init__(f"{code}{detail}")

    @classmethod
    def from_code(cls, code: str, message: str = "", *, notice: ServerNotice | None = None) -> "FatalEngineError":
        return cls(code, message, remediation=fatal_remediation(code, message=message, notice=notice))
