"""Handlers for the branching, system-call and generic bytecodes.

A control handler is called as ``handler(cpu, instr, pc)`` like the data
handlers, where ``pc`` is the address of the instruction being executed.
Unlike the data handlers it returns the address of the next instruction to
execute, or ``None`` when dispatch must stop. ``cpu`` exposes ``registers``,
``machine`` (with ``system_call`` and ``unchecked_system_call``) and
``execute(instr)``, which runs a raw instruction word through the decoder.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from .bytecodes import Bytecode, RI16Branch, RI21Branch, sign_extend
from .exceptions import ExceptionType, trigger_exception
from .registers import Reg

ControlHandler = Callable[[Any, int, int], Optional[int]]

_HANDLERS: Dict[Bytecode, ControlHandler] = {}


def _op(bytecode: Bytecode) -> Callable[[ControlHandler], ControlHandler]:
    def register(handler: ControlHandler) -> ControlHandler:
        _HANDLERS[bytecode] = handler
        return handler

    return register


def _target(cpu: Any, pc: int, offset: int) -> int:
    return (pc + offset) & cpu.registers.mask


def _signed(cpu: Any, value: int) -> int:
    return sign_extend(value, cpu.registers.width)


# ------------------------------------------------------ unconditional branches

@_op(Bytecode.B)
def _b(cpu: Any, instr: int, pc: int) -> int:
    return _target(cpu, pc, sign_extend(instr, 32))


@_op(Bytecode.BL)
def _bl(cpu: Any, instr: int, pc: int) -> int:
    cpu.registers[Reg.RA] = pc + 4
    return _target(cpu, pc, sign_extend(instr, 32))


@_op(Bytecode.JIRL)
def _jirl(cpu: Any, instr: int, pc: int) -> int:
    fi = RI16Branch.unpack(instr)
    regs = cpu.registers
    target = (regs[fi.rj] + (fi.offset << 2)) & regs.mask
    if fi.rd != 0:
        regs[fi.rd] = pc + 4
    return target


# ------------------------------------------------------- conditional branches

def _make_branch_zero(test: Callable[[Any, int], bool]) -> ControlHandler:
    def handler(cpu: Any, instr: int, pc: int) -> int:
        fi = RI21Branch.unpack(instr)
        if test(cpu, fi.rj):
            return _target(cpu, pc, fi.offset)
        return _target(cpu, pc, 4)

    return handler


_HANDLERS[Bytecode.BEQZ] = _make_branch_zero(lambda cpu, r: cpu.registers[r] == 0)
_HANDLERS[Bytecode.BNEZ] = _make_branch_zero(lambda cpu, r: cpu.registers[r] != 0)
_HANDLERS[Bytecode.BCEQZ] = _make_branch_zero(lambda cpu, r: cpu.registers.cf(r) == 0)
_HANDLERS[Bytecode.BCNEZ] = _make_branch_zero(lambda cpu, r: cpu.registers.cf(r) != 0)


_COMPARE: Dict[Bytecode, Callable[[Any, int, int], bool]] = {
    Bytecode.BEQ: lambda cpu, j, d: j == d,
    Bytecode.BNE: lambda cpu, j, d: j != d,
    Bytecode.BLT: lambda cpu, j, d: _signed(cpu, j) < _signed(cpu, d),
    Bytecode.BGE: lambda cpu, j, d: _signed(cpu, j) >= _signed(cpu, d),
    Bytecode.BLTU: lambda cpu, j, d: j < d,
    Bytecode.BGEU: lambda cpu, j, d: j >= d,
}


def _make_compare_branch(test: Callable[[Any, int, int], bool]) -> ControlHandler:
    def handler(cpu: Any, instr: int, pc: int) -> int:
        fi = RI16Branch.unpack(instr)
        regs = cpu.registers
        if test(cpu, regs[fi.rj], regs[fi.rd]):
            return _target(cpu, pc, fi.offset)
        return _target(cpu, pc, 4)

    return handler


for _bc, _test in _COMPARE.items():
    _HANDLERS[_bc] = _make_compare_branch(_test)


# ---------------------------------------------------------------- system calls

@_op(Bytecode.SYSCALL)
def _syscall(cpu: Any, instr: int, pc: int) -> int:
    regs = cpu.registers
    regs.pc = pc
    cpu.machine.system_call(regs[Reg.A7])
    # The handler may have moved the PC; continue after wherever it points.
    return _target(cpu, regs.pc, 4)


@_op(Bytecode.SYSCALLIMM)
def _syscall_imm(cpu: Any, instr: int, pc: int) -> int:
    regs = cpu.registers
    regs.pc = pc
    cpu.machine.unchecked_system_call(instr)
    return regs[Reg.RA]


# ------------------------------------------------------------ generic handlers

@_op(Bytecode.INVALID)
def _invalid(cpu: Any, instr: int, pc: int) -> Optional[int]:
    cpu.registers.pc = pc
    trigger_exception(ExceptionType.ILLEGAL_OPCODE, instr)
    return None


@_op(Bytecode.STOP)
def _stop(cpu: Any, instr: int, pc: int) -> Optional[int]:
    cpu.registers.pc = pc
    return None


@_op(Bytecode.NOP)
def _nop(cpu: Any, instr: int, pc: int) -> int:
    return _target(cpu, pc, 4)


@_op(Bytecode.FUNCTION)
def _function(cpu: Any, instr: int, pc: int) -> int:
    cpu.execute(instr)
    return _target(cpu, pc, 4)


@_op(Bytecode.FUNCBLOCK)
def _function_block(cpu: Any, instr: int, pc: int) -> int:
    regs = cpu.registers
    regs.pc = pc
    cpu.execute(instr)
    return _target(cpu, regs.pc, 4)


def control_handlers() -> Dict[Bytecode, ControlHandler]:
    """Handlers for every branching, system-call and generic bytecode."""
    return dict(_HANDLERS)