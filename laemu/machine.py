"""The machine: CPU, memory, instruction counters and system calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from .bytecodes import sign_extend
from .cpu import CPU, UINT64_MAX
from .exceptions import ExceptionType, MachineException
from .memory import Memory
from .registers import Reg

SYSCALLS_MAX = 512

SyscallHandler = Callable[["Machine"], None]

# integer kind -> (size in bytes, signed)
_INT_KINDS = {
    "b": (1, True),
    "h": (2, True),
    "w": (4, True),
    "d": (8, True),
    "bu": (1, False),
    "hu": (2, False),
    "wu": (4, False),
    "du": (8, False),
}


@dataclass
class MachineOptions:
    """Construction options of a machine.

    ``decoder`` maps a raw instruction word to a handler called as
    ``handler(cpu, instr)``; it serves the generic FUNCTION bytecodes.
    """

    width: int = 64
    decoder: Optional[Callable[[int], Optional[Callable]]] = None


class Machine:
    """An emulated LoongArch machine."""

    def __init__(self, options: Optional[MachineOptions] = None) -> None:
        self.options = options if options is not None else MachineOptions()
        self.memory = Memory()
        self.cpu = CPU(self)
        self.instruction_counter = 0
        self.max_instructions = UINT64_MAX
        self._syscall_handlers: List[Optional[SyscallHandler]] = [None] * SYSCALLS_MAX
        self.cpu.reset()

    def simulate(self, max_instructions: int = UINT64_MAX, counter: int = 0) -> bool:
        """Run from the current PC; True if the machine stopped."""
        return self.cpu.simulate(self.cpu.pc, counter, max_instructions)

    def stop(self) -> None:
        """End simulation after the current instruction."""
        self.max_instructions = 0

    @property
    def stopped(self) -> bool:
        return self.max_instructions == 0

    @property
    def instruction_limit_reached(self) -> bool:
        return not self.stopped and self.instruction_counter >= self.max_instructions

    def increment_counter(self, amount: int) -> None:
        self.instruction_counter += amount

    def system_call(self, number: int) -> None:
        """Invoke the handler installed for system call ``number``."""
        if 0 <= number < len(self._syscall_handlers):
            self.unchecked_system_call(number)
            return
        raise MachineException(ExceptionType.ILLEGAL_OPERATION, "Unknown system call", number)

    def unchecked_system_call(self, number: int) -> None:
        """Invoke system call ``number`` without checking the range."""
        handler = self._syscall_handlers[number]
        if handler is None:
            raise MachineException(
                ExceptionType.UNIMPLEMENTED_SYSCALL, "Unimplemented syscall", number
            )
        handler(self)

    def install_syscall_handler(self, number: int, handler: SyscallHandler) -> None:
        """Install ``handler`` for ``number``; numbers out of range are ignored."""
        if 0 <= number < len(self._syscall_handlers):
            self._syscall_handlers[number] = handler

    def set_result(self, value) -> None:
        """Store a system call or function result in A0 (or FA0 for floats)."""
        regs = self.cpu.registers
        if isinstance(value, int):
            regs[Reg.A0] = value
        elif isinstance(value, float):
            regs.vector(Reg.FA0).set_lane("df", 0, value)
        else:
            raise TypeError(f"unsupported result type: {type(value).__name__}")

    def return_value(self, kind: str = "du"):
        """The value in A0 (or FA0 for "f" and "df") read as lane ``kind``."""
        regs = self.cpu.registers
        if kind in ("f", "df"):
            return regs.vector(Reg.FA0).get_lane(kind, 0)
        try:
            size, signed = _INT_KINDS[kind]
        except KeyError:
            raise ValueError(f"unknown value kind: {kind!r}") from None
        value = regs[Reg.A0] & ((1 << (size * 8)) - 1)
        return sign_extend(value, size * 8) if signed else value