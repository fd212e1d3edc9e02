"""The CPU: execute segments of decoded bytecodes and the dispatch loops."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Optional, Union

from .bytecodes import Bytecode
from .control_ops import control_handlers
from .exceptions import ExceptionType, MachineException, trigger_exception
from .integer_ops import integer_handlers
from .registers import Reg, Registers

if TYPE_CHECKING:
    from .machine import Machine
    from .memory import Memory

UINT64_MAX = (1 << 64) - 1

_DATA = integer_handlers()
_CONTROL = control_handlers()


@dataclass(frozen=True)
class DecodedInstruction:
    """One decoded instruction: its bytecode and its packed operand word."""

    bytecode: Bytecode
    instr: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "bytecode", Bytecode(self.bytecode))
        object.__setattr__(self, "instr", int(self.instr) & 0xFFFFFFFF)


InstructionLike = Union[DecodedInstruction, Bytecode, int, tuple]


def _as_decoded(item: InstructionLike) -> DecodedInstruction:
    if isinstance(item, DecodedInstruction):
        return item
    if isinstance(item, tuple):
        return DecodedInstruction(*item)
    return DecodedInstruction(item)


class DecodedExecuteSegment:
    """A contiguous range of guest code, one decoded instruction per 4 bytes."""

    def __init__(self, begin: int, instructions: Iterable[InstructionLike]) -> None:
        self.begin = begin
        self.instructions = tuple(_as_decoded(item) for item in instructions)

    @property
    def end(self) -> int:
        return self.begin + 4 * len(self.instructions)

    def __len__(self) -> int:
        return len(self.instructions)

    def contains(self, addr: int) -> bool:
        """Whether ``addr`` lies inside this segment."""
        return self.begin <= addr < self.end

    def at(self, addr: int) -> DecodedInstruction:
        """The decoded instruction at ``addr``."""
        if not self.contains(addr):
            raise MachineException(
                ExceptionType.EXECUTION_SPACE_PROTECTION_FAULT,
                "Jump outside execute segment",
                addr,
            )
        offset = addr - self.begin
        if offset % 4:
            raise MachineException(
                ExceptionType.MISALIGNED_INSTRUCTION, "Misaligned instruction", addr
            )
        return self.instructions[offset // 4]

    def __repr__(self) -> str:
        return f"DecodedExecuteSegment(0x{self.begin:x}..0x{self.end:x})"


_EMPTY_SEGMENT = DecodedExecuteSegment(0, ())


class CPU:
    """Registers, execute segments and the instruction dispatch loops."""

    def __init__(self, machine: Machine) -> None:
        self.machine = machine
        self.registers = Registers(machine.options.width)
        self.ll_bit = False
        self._segments: List[DecodedExecuteSegment] = []
        self._exec = _EMPTY_SEGMENT

    @property
    def memory(self) -> Memory:
        return self.machine.memory

    @property
    def pc(self) -> int:
        return self.registers.pc

    @property
    def current_execute_segment(self) -> DecodedExecuteSegment:
        return self._exec

    def reset(self) -> None:
        """Clear the registers and point PC and SP at the memory layout."""
        self.registers.reset()
        self.registers.pc = self.memory.start_address
        self.registers[Reg.SP] = self.memory.stack_address

    def jump(self, addr: int) -> None:
        """Continue execution at ``addr``, which must be 4-byte aligned."""
        if addr % 4:
            trigger_exception(ExceptionType.MISALIGNED_INSTRUCTION, addr)
        self.registers.pc = addr & self.registers.mask

    def increment_pc(self, delta: int) -> None:
        self.registers.pc = (self.registers.pc + delta) & self.registers.mask

    def execute(self, instr: int) -> None:
        """Run a raw instruction word through the machine's decoder."""
        decoder = self.machine.options.decoder
        if decoder is None:
            trigger_exception(ExceptionType.UNIMPLEMENTED_INSTRUCTION, instr)
        handler = decoder(instr)
        if handler is None:
            trigger_exception(ExceptionType.UNIMPLEMENTED_INSTRUCTION, instr)
        handler(self, instr)

    def init_execute_area(
        self, instructions: Iterable[InstructionLike], begin: int
    ) -> DecodedExecuteSegment:
        """Create an execute segment at ``begin`` and make it current."""
        if begin % 4:
            raise MachineException(
                ExceptionType.MISALIGNED_INSTRUCTION, "Misaligned execute area", begin
            )
        segment = DecodedExecuteSegment(begin, instructions)
        self._segments.insert(0, segment)
        self._exec = segment
        return segment

    def next_execute_segment(self, pc: int) -> DecodedExecuteSegment:
        """Find the segment holding ``pc`` and make it current."""
        for segment in self._segments:
            if segment.contains(pc):
                self._exec = segment
                return segment
        raise MachineException(
            ExceptionType.EXECUTION_SPACE_PROTECTION_FAULT,
            "Jump outside execute segment",
            pc,
        )

    def is_executable(self, addr: int) -> bool:
        return any(segment.contains(addr) for segment in self._segments)

    def _segment_for(self, pc: int) -> DecodedExecuteSegment:
        if self._exec.contains(pc):
            return self._exec
        return self.next_execute_segment(pc)

    def _dispatch(self, decoded: DecodedInstruction, pc: int) -> Optional[int]:
        """Execute one instruction; return the next PC, or None to stop."""
        bytecode = decoded.bytecode
        control = _CONTROL.get(bytecode)
        if control is not None:
            return control(self, decoded.instr, pc)
        handler = _DATA.get(bytecode)
        if handler is None:
            trigger_exception(ExceptionType.UNIMPLEMENTED_INSTRUCTION, decoded.instr)
        handler(self, decoded.instr, pc)
        return (pc + 4) & self.registers.mask

    def step_one(self, use_instruction_counter: bool = True) -> None:
        """Execute the single instruction at the current PC."""
        regs = self.registers
        pc = regs.pc
        next_pc = self._dispatch(self._segment_for(pc).at(pc), pc)
        if next_pc is None:
            self.machine.stop()
        else:
            regs.pc = next_pc
        if use_instruction_counter:
            self.machine.increment_counter(1)

    def simulate(self, pc: int, counter: int, max_counter: int) -> bool:
        """Run from ``pc`` until the counter reaches the limit or the machine
        stops. Returns True if the machine stopped."""
        machine = self.machine
        regs = self.registers
        machine.max_instructions = max_counter
        try:
            while counter < machine.max_instructions:
                regs.pc = pc
                decoded = self._segment_for(pc).at(pc)
                counter += 1
                machine.instruction_counter = counter
                next_pc = self._dispatch(decoded, pc)
                counter = machine.instruction_counter
                if next_pc is None:
                    machine.stop()
                    pc = regs.pc
                    break
                pc = next_pc
            regs.pc = pc
        finally:
            machine.instruction_counter = counter
        return machine.max_instructions == 0

    def simulate_inaccurate(self, pc: int) -> None:
        """Run from ``pc`` without counting instructions until stopped."""
        machine = self.machine
        regs = self.registers
        machine.max_instructions = UINT64_MAX
        while machine.max_instructions:
            regs.pc = pc
            next_pc = self._dispatch(self._segment_for(pc).at(pc), pc)
            if next_pc is None:
                machine.stop()
                pc = regs.pc
                break
            pc = next_pc
        regs.pc = pc

    def simulate_precise(self) -> None:
        """Step one instruction at a time until the instruction limit."""
        machine = self.machine
        while machine.instruction_counter < machine.max_instructions:
            self.step_one(True)