"""Machine exception types and the exception raised by the emulator."""

from __future__ import annotations

from enum import IntEnum


class ExceptionType(IntEnum):
    """Kinds of fault a guest program can cause."""

    ILLEGAL_OPCODE = 0
    ILLEGAL_OPERATION = 1
    PROTECTION_FAULT = 2
    EXECUTION_SPACE_PROTECTION_FAULT = 3
    MISALIGNED_INSTRUCTION = 4
    UNIMPLEMENTED_INSTRUCTION = 5
    MACHINE_TIMEOUT = 6
    OUT_OF_MEMORY = 7
    INVALID_PROGRAM = 8
    FEATURE_DISABLED = 9
    UNIMPLEMENTED_SYSCALL = 10
    GUEST_ABORT = 11

    @property
    def message(self) -> str:
        """The standard description of this exception type."""
        return _MESSAGES.get(self, "Unknown exception")


_MESSAGES = {
    ExceptionType.ILLEGAL_OPCODE: "Illegal opcode",
    ExceptionType.ILLEGAL_OPERATION: "Illegal operation",
    ExceptionType.PROTECTION_FAULT: "Protection fault",
    ExceptionType.EXECUTION_SPACE_PROTECTION_FAULT: "Execute protection fault",
    ExceptionType.MISALIGNED_INSTRUCTION: "Misaligned instruction",
    ExceptionType.UNIMPLEMENTED_INSTRUCTION: "Unimplemented instruction",
    ExceptionType.MACHINE_TIMEOUT: "Machine timeout",
    ExceptionType.OUT_OF_MEMORY: "Out of memory",
    ExceptionType.INVALID_PROGRAM: "Invalid program",
    ExceptionType.FEATURE_DISABLED: "Feature disabled",
    ExceptionType.UNIMPLEMENTED_SYSCALL: "Unimplemented syscall",
    ExceptionType.GUEST_ABORT: "Guest abort",
}


class MachineException(Exception):
    """Raised when the emulated machine faults."""

    def __init__(self, type: ExceptionType, message: str, data: int = 0) -> None:
        super().__init__(message)
        self.type = ExceptionType(type)
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return self.message


def trigger_exception(type: ExceptionType, data: int = 0) -> None:
    """Raise a MachineException with the standard message for ``type``."""
    kind = ExceptionType(type)
    raise MachineException(kind, kind.message, data)