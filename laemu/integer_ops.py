"""Handlers for the non-branching bytecodes of the threaded dispatcher.

A handler is called as ``handler(cpu, instr, pc)``. ``cpu`` exposes
``registers`` (a :class:`~laemu.registers.Registers`) and ``memory`` (a
:class:`~laemu.memory.Memory`). ``instr`` is the packed operand word in the
bytecode's operand format, except for the PC-relative bytecodes, which take
the raw instruction word. ``pc`` is the address of the instruction.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

from .bytecodes import (
    R2,
    R3,
    R3SA2,
    R3SA3,
    RI12,
    RI14,
    RI20,
    BitField,
    BitFieldW,
    Bytecode,
    FourR,
    Shift,
    Shift64,
    sign_extend,
)

Handler = Callable[[Any, int, int], None]

_MASK32 = 0xFFFFFFFF
_MASK64 = (1 << 64) - 1
_LOW52 = 0x000FFFFFFFFFFFFF

_HANDLERS: Dict[Bytecode, Handler] = {}


def _op(bytecode: Bytecode) -> Callable[[Handler], Handler]:
    def register(handler: Handler) -> Handler:
        _HANDLERS[bytecode] = handler
        return handler

    return register


def _s32(value: int) -> int:
    return sign_extend(value, 32)


def _s64(value: int) -> int:
    return sign_extend(value, 64)


def _clz(value: int, bits: int) -> int:
    return bits - value.bit_length()


def _ctz(value: int, bits: int) -> int:
    return bits if value == 0 else (value & -value).bit_length() - 1


def _address(cpu: Any, value: int) -> int:
    return value & cpu.registers.mask


def _raw_rd(instr: int) -> int:
    return instr & 0x1F


def _raw_si20(instr: int) -> int:
    return sign_extend(instr >> 5, 20)


# ---------------------------------------------------------------- loads/stores

def _make_load_ri12(size: int, signed: bool) -> Handler:
    def load(cpu: Any, instr: int, pc: int) -> None:
        fi = RI12.unpack(instr)
        regs = cpu.registers
        addr = _address(cpu, regs[fi.rj] + fi.imm)
        regs[fi.rd] = cpu.memory.read(addr, size, signed)

    return load


def _make_store_ri12(size: int) -> Handler:
    def store(cpu: Any, instr: int, pc: int) -> None:
        fi = RI12.unpack(instr)
        regs = cpu.registers
        addr = _address(cpu, regs[fi.rj] + fi.imm)
        cpu.memory.write(addr, regs[fi.rd], size)

    return store


def _make_load_indexed(size: int, signed: bool) -> Handler:
    def load(cpu: Any, instr: int, pc: int) -> None:
        fi = R3.unpack(instr)
        regs = cpu.registers
        addr = _address(cpu, regs[fi.rj] + regs[fi.rk])
        regs[fi.rd] = cpu.memory.read(addr, size, signed)

    return load


def _make_store_indexed(size: int) -> Handler:
    def store(cpu: Any, instr: int, pc: int) -> None:
        fi = R3.unpack(instr)
        regs = cpu.registers
        addr = _address(cpu, regs[fi.rj] + regs[fi.rk])
        cpu.memory.write(addr, regs[fi.rd], size)

    return store


def _make_load_ptr(size: int, signed: bool) -> Handler:
    def load(cpu: Any, instr: int, pc: int) -> None:
        fi = RI14.unpack(instr)
        regs = cpu.registers
        addr = _address(cpu, regs[fi.rj] + (fi.imm14 << 2))
        regs[fi.rd] = cpu.memory.read(addr, size, signed)

    return load


def _make_store_ptr(size: int) -> Handler:
    def store(cpu: Any, instr: int, pc: int) -> None:
        fi = RI14.unpack(instr)
        regs = cpu.registers
        addr = _address(cpu, regs[fi.rj] + (fi.imm14 << 2))
        cpu.memory.write(addr, regs[fi.rd], size)

    return store


for _bc, _size, _signed in (
    (Bytecode.LD_D, 8, False),
    (Bytecode.LD_BU, 1, False),
    (Bytecode.LD_B, 1, True),
    (Bytecode.LD_HU, 2, False),
    (Bytecode.LD_H, 2, True),
    (Bytecode.LD_WU, 4, False),
):
    _HANDLERS[_bc] = _make_load_ri12(_size, _signed)

for _bc, _size in (
    (Bytecode.ST_D, 8),
    (Bytecode.ST_B, 1),
    (Bytecode.ST_H, 2),
    (Bytecode.ST_W, 4),
):
    _HANDLERS[_bc] = _make_store_ri12(_size)

for _bc, _size, _signed in (
    (Bytecode.LDX_D, 8, False),
    (Bytecode.LDX_W, 4, True),
    (Bytecode.LDX_BU, 1, False),
    (Bytecode.LDX_HU, 2, False),
    (Bytecode.LDX_B, 1, True),
):
    _HANDLERS[_bc] = _make_load_indexed(_size, _signed)

for _bc, _size in (
    (Bytecode.STX_D, 8),
    (Bytecode.STX_W, 4),
    (Bytecode.STX_B, 1),
):
    _HANDLERS[_bc] = _make_store_indexed(_size)

_HANDLERS[Bytecode.LDPTR_D] = _make_load_ptr(8, False)
_HANDLERS[Bytecode.LDPTR_W] = _make_load_ptr(4, True)
_HANDLERS[Bytecode.STPTR_D] = _make_store_ptr(8)
_HANDLERS[Bytecode.STPTR_W] = _make_store_ptr(4)


# ------------------------------------------------------- register-register ops

_R3_OPS: Dict[Bytecode, Callable[[int, int], int]] = {
    Bytecode.MOVE: lambda j, k: k,
    Bytecode.OR: lambda j, k: j | k,
    Bytecode.AND: lambda j, k: j & k,
    Bytecode.XOR: lambda j, k: j ^ k,
    Bytecode.ANDN: lambda j, k: j & ~k,
    Bytecode.ORN: lambda j, k: j | ~k,
    Bytecode.ADD_D: lambda j, k: j + k,
    Bytecode.SUB_D: lambda j, k: j - k,
    Bytecode.MUL_D: lambda j, k: j * k,
    Bytecode.ADD_W: lambda j, k: _s32(j + k),
    Bytecode.SUB_W: lambda j, k: _s32(j - k),
    Bytecode.MUL_W: lambda j, k: _s32(_s32(j) * _s32(k)),
    Bytecode.MOD_DU: lambda j, k: j % k if k != 0 else 0,
    Bytecode.SLTU: lambda j, k: int(j < k),
    Bytecode.SLT: lambda j, k: int(_s64(j) < _s64(k)),
    Bytecode.MASKEQZ: lambda j, k: 0 if k == 0 else j,
    Bytecode.MASKNEZ: lambda j, k: 0 if k != 0 else j,
    Bytecode.SLL_D: lambda j, k: j << (k & 0x3F),
    Bytecode.SRL_D: lambda j, k: j >> (k & 0x3F),
}


def _make_r3(fn: Callable[[int, int], int]) -> Handler:
    def handler(cpu: Any, instr: int, pc: int) -> None:
        fi = R3.unpack(instr)
        regs = cpu.registers
        regs[fi.rd] = fn(regs[fi.rj], regs[fi.rk])

    return handler


for _bc, _fn in _R3_OPS.items():
    _HANDLERS[_bc] = _make_r3(_fn)


# ------------------------------------------------------------- immediate ops

_RI12_OPS: Dict[Bytecode, Callable[[int, int], int]] = {
    Bytecode.ADDI_W: lambda j, imm: _s32(j + imm),
    Bytecode.ADDI_D: lambda j, imm: j + imm,
    Bytecode.ANDI: lambda j, imm: j & imm,
    Bytecode.ORI: lambda j, imm: j | imm,
    Bytecode.XORI: lambda j, imm: j ^ imm,
    Bytecode.SLTI: lambda j, imm: int(_s64(j) < imm),
    Bytecode.SLTUI: lambda j, imm: int(j < (imm & _MASK64)),
    Bytecode.LU52I_D: lambda j, imm: ((imm & 0xFFF) << 52) | (j & _LOW52),
}


def _make_ri12(fn: Callable[[int, int], int]) -> Handler:
    def handler(cpu: Any, instr: int, pc: int) -> None:
        fi = RI12.unpack(instr)
        regs = cpu.registers
        regs[fi.rd] = fn(regs[fi.rj], fi.imm)

    return handler


for _bc, _fn in _RI12_OPS.items():
    _HANDLERS[_bc] = _make_ri12(_fn)


# ------------------------------------------------------------------- shifts

@_op(Bytecode.SLLI_W)
def _slli_w(cpu: Any, instr: int, pc: int) -> None:
    fi = Shift.unpack(instr)
    regs = cpu.registers
    regs[fi.rd] = _s32((regs[fi.rj] & _MASK32) << fi.ui5)


@_op(Bytecode.SRLI_W)
def _srli_w(cpu: Any, instr: int, pc: int) -> None:
    fi = Shift.unpack(instr)
    regs = cpu.registers
    regs[fi.rd] = _s32((regs[fi.rj] & _MASK32) >> fi.ui5)


@_op(Bytecode.SLLI_D)
def _slli_d(cpu: Any, instr: int, pc: int) -> None:
    fi = Shift64.unpack(instr)
    regs = cpu.registers
    regs[fi.rd] = regs[fi.rj] << fi.ui6


@_op(Bytecode.SRLI_D)
def _srli_d(cpu: Any, instr: int, pc: int) -> None:
    fi = Shift64.unpack(instr)
    regs = cpu.registers
    regs[fi.rd] = regs[fi.rj] >> fi.ui6


@_op(Bytecode.SRAI_D)
def _srai_d(cpu: Any, instr: int, pc: int) -> None:
    fi = Shift64.unpack(instr)
    regs = cpu.registers
    regs[fi.rd] = _s64(regs[fi.rj]) >> fi.ui6


@_op(Bytecode.ALSL_D)
def _alsl_d(cpu: Any, instr: int, pc: int) -> None:
    fi = R3SA2.unpack(instr)
    regs = cpu.registers
    regs[fi.rd] = (regs[fi.rj] << (fi.sa2 + 1)) + regs[fi.rk]


@_op(Bytecode.BYTEPICK_D)
def _bytepick_d(cpu: Any, instr: int, pc: int) -> None:
    fi = R3SA3.unpack(instr)
    regs = cpu.registers
    rj, rk = regs[fi.rj], regs[fi.rk]
    shift = fi.sa3 * 8
    regs[fi.rd] = rj if shift == 0 else (rk << (64 - shift)) | (rj >> shift)


# ---------------------------------------------------------------- bit fields

@_op(Bytecode.BSTRPICK_D)
def _bstrpick_d(cpu: Any, instr: int, pc: int) -> None:
    fi = BitField.unpack(instr)
    regs = cpu.registers
    width = fi.msbd - fi.lsbd + 1
    regs[fi.rd] = (regs[fi.rj] >> fi.lsbd) & ((1 << width) - 1)


@_op(Bytecode.BSTRPICK_W)
def _bstrpick_w(cpu: Any, instr: int, pc: int) -> None:
    fi = BitFieldW.unpack(instr)
    regs = cpu.registers
    width = fi.msbw - fi.lsbw + 1
    mask = ((1 << width) - 1) & _MASK32
    regs[fi.rd] = ((regs[fi.rj] & _MASK32) >> fi.lsbw) & mask


@_op(Bytecode.BSTRINS_D)
def _bstrins_d(cpu: Any, instr: int, pc: int) -> None:
    fi = BitField.unpack(instr)
    if fi.msbd < fi.lsbd:
        return
    regs = cpu.registers
    width = fi.msbd - fi.lsbd + 1
    mask = (((1 << width) - 1) << fi.lsbd) & _MASK64
    bits = (regs[fi.rj] << fi.lsbd) & mask
    regs[fi.rd] = (regs[fi.rd] & ~mask) | bits


# -------------------------------------------------------------- unary R2 ops

_R2_OPS: Dict[Bytecode, Callable[[int], int]] = {
    Bytecode.CLO_W: lambda v: _clz(~v & _MASK32, 32),
    Bytecode.CLO_D: lambda v: _clz(~v & _MASK64, 64),
    Bytecode.CLZ_W: lambda v: _clz(v & _MASK32, 32),
    Bytecode.CLZ_D: lambda v: _clz(v, 64),
    Bytecode.CTZ_D: lambda v: _ctz(v, 64),
    Bytecode.CTO_W: lambda v: _ctz(~v & _MASK32, 32),
    Bytecode.CTO_D: lambda v: _ctz(~v & _MASK64, 64),
    Bytecode.REVB_2H: lambda v: _s32(
        ((v & 0x00FF00FF) << 8) | ((v & 0xFF00FF00) >> 8)
    ),
    Bytecode.REVB_4H: lambda v: ((v & 0x00FF00FF00FF00FF) << 8)
    | ((v >> 8) & 0x00FF00FF00FF00FF),
    Bytecode.EXT_W_B: lambda v: sign_extend(v, 8),
    Bytecode.EXT_W_H: lambda v: sign_extend(v, 16),
}


def _make_r2(fn: Callable[[int], int]) -> Handler:
    def handler(cpu: Any, instr: int, pc: int) -> None:
        fi = R2.unpack(instr)
        regs = cpu.registers
        regs[fi.rd] = fn(regs[fi.rj])

    return handler


for _bc, _fn in _R2_OPS.items():
    _HANDLERS[_bc] = _make_r2(_fn)


# ---------------------------------------------------------- upper immediates

@_op(Bytecode.LU12I_W)
def _lu12i_w(cpu: Any, instr: int, pc: int) -> None:
    cpu.registers[_raw_rd(instr)] = _s32(((instr >> 5) & 0xFFFFF) << 12)


@_op(Bytecode.LU32I_D)
def _lu32i_d(cpu: Any, instr: int, pc: int) -> None:
    fi = RI20.unpack(instr)
    regs = cpu.registers
    lower = regs[fi.rd] & _MASK32
    regs[fi.rd] = ((fi.get_imm() & _MASK32) << 32) | lower


@_op(Bytecode.PCADDI)
def _pcaddi(cpu: Any, instr: int, pc: int) -> None:
    cpu.registers[_raw_rd(instr)] = pc + (_raw_si20(instr) << 2)


@_op(Bytecode.PCALAU12I)
def _pcalau12i(cpu: Any, instr: int, pc: int) -> None:
    offset = _s32(((instr >> 5) & 0xFFFFF) << 12)
    cpu.registers[_raw_rd(instr)] = (pc & ~0xFFF) + offset


@_op(Bytecode.PCADDU12I)
def _pcaddu12i(cpu: Any, instr: int, pc: int) -> None:
    cpu.registers[_raw_rd(instr)] = pc + (_raw_si20(instr) << 12)


@_op(Bytecode.PCADDU18I)
def _pcaddu18i(cpu: Any, instr: int, pc: int) -> None:
    cpu.registers[_raw_rd(instr)] = pc + (_raw_si20(instr) << 18)


# ------------------------------------------------------- vector and float ops

def _make_vector_load(size: int, indexed: bool) -> Handler:
    def load(cpu: Any, instr: int, pc: int) -> None:
        regs = cpu.registers
        if indexed:
            fi = R3.unpack(instr)
            addr = _address(cpu, regs[fi.rj] + regs[fi.rk])
        else:
            fi = RI12.unpack(instr)
            addr = _address(cpu, regs[fi.rj] + fi.imm)
        value = cpu.memory.read(addr, size)
        regs.vector(fi.rd).data[:size] = value.to_bytes(size, "little")

    return load


def _make_vector_store(size: int, indexed: bool) -> Handler:
    def store(cpu: Any, instr: int, pc: int) -> None:
        regs = cpu.registers
        if indexed:
            fi = R3.unpack(instr)
            addr = _address(cpu, regs[fi.rj] + regs[fi.rk])
        else:
            fi = RI12.unpack(instr)
            addr = _address(cpu, regs[fi.rj] + fi.imm)
        data = bytes(regs.vector(fi.rd).data[:size])
        cpu.memory.write(addr, int.from_bytes(data, "little"), size)

    return store


for _bc, _size, _indexed in (
    (Bytecode.VLD, 16, False),
    (Bytecode.VLDX, 16, True),
    (Bytecode.XVLD, 32, False),
    (Bytecode.XVLDX, 32, True),
):
    _HANDLERS[_bc] = _make_vector_load(_size, _indexed)

for _bc, _size, _indexed in (
    (Bytecode.VST, 16, False),
    (Bytecode.VSTX, 16, True),
    (Bytecode.XVST, 32, False),
    (Bytecode.XVSTX, 32, True),
    (Bytecode.FST_D, 8, False),
    (Bytecode.FSTX_D, 8, True),
):
    _HANDLERS[_bc] = _make_vector_store(_size, _indexed)


@_op(Bytecode.FLD_D)
def _fld_d(cpu: Any, instr: int, pc: int) -> None:
    fi = RI12.unpack(instr)
    regs = cpu.registers
    value = cpu.memory.read(_address(cpu, regs[fi.rj] + fi.imm), 8)
    vr = regs.vector(fi.rd)
    vr.set_lane("du", 0, value)
    vr.set_lane("du", 1, 0)


@_op(Bytecode.FLDX_D)
def _fldx_d(cpu: Any, instr: int, pc: int) -> None:
    fi = R3.unpack(instr)
    regs = cpu.registers
    value = cpu.memory.read(_address(cpu, regs[fi.rj] + regs[fi.rk]), 8)
    regs.vector(fi.rd).set_lane("du", 0, value)


@_op(Bytecode.FADD_D)
def _fadd_d(cpu: Any, instr: int, pc: int) -> None:
    fi = R3.unpack(instr)
    regs = cpu.registers
    result = regs.vector(fi.rj).get_lane("df", 0) + regs.vector(fi.rk).get_lane("df", 0)
    regs.vector(fi.rd).set_lane("df", 0, result)


@_op(Bytecode.FMUL_D)
def _fmul_d(cpu: Any, instr: int, pc: int) -> None:
    fi = R3.unpack(instr)
    regs = cpu.registers
    result = regs.vector(fi.rj).get_lane("df", 0) * regs.vector(fi.rk).get_lane("df", 0)
    regs.vector(fi.rd).set_lane("df", 0, result)


@_op(Bytecode.FMADD_D)
def _fmadd_d(cpu: Any, instr: int, pc: int) -> None:
    fi = FourR.unpack(instr)
    regs = cpu.registers
    a = regs.vector(fi.ra).get_lane("df", 0)
    j = regs.vector(fi.rj).get_lane("df", 0)
    k = regs.vector(fi.rk).get_lane("df", 0)
    regs.vector(fi.rd).set_lane("df", 0, a + j * k)


@_op(Bytecode.VFADD_D)
def _vfadd_d(cpu: Any, instr: int, pc: int) -> None:
    fi = R3.unpack(instr)
    regs = cpu.registers
    vj, vk, vd = regs.vector(fi.rj), regs.vector(fi.rk), regs.vector(fi.rd)
    for lane in range(2):
        vd.set_lane("df", lane, vj.get_lane("df", lane) + vk.get_lane("df", lane))


def _make_vector_fma(negate: bool) -> Handler:
    def handler(cpu: Any, instr: int, pc: int) -> None:
        fi = FourR.unpack(instr)
        regs = cpu.registers
        vj, vk, va = regs.vector(fi.rj), regs.vector(fi.rk), regs.vector(fi.ra)
        vd = regs.vector(fi.rd)
        for lane in range(2):
            product = vj.get_lane("df", lane) * vk.get_lane("df", lane)
            addend = va.get_lane("df", lane)
            vd.set_lane("df", lane, addend - product if negate else addend + product)

    return handler


_HANDLERS[Bytecode.VFMADD_D] = _make_vector_fma(negate=False)
_HANDLERS[Bytecode.VFNMADD_D] = _make_vector_fma(negate=True)


@_op(Bytecode.VHADDW_D_W)
def _vhaddw_d_w(cpu: Any, instr: int, pc: int) -> None:
    fi = R3.unpack(instr)
    regs = cpu.registers
    src1, src2 = regs.vector(fi.rj), regs.vector(fi.rk)
    first = src1.get_lane("w", 0) + src1.get_lane("w", 1)
    second = src2.get_lane("w", 0) + src2.get_lane("w", 1)
    regs.vector(fi.rd).set_lanes("d", [first, second, 0, 0])


def integer_handlers() -> Dict[Bytecode, Handler]:
    """Handlers for every non-branching data bytecode, keyed by bytecode."""
    return dict(_HANDLERS)