"""Bytecodes for threaded dispatch and their compact operand formats.

Each operand format packs the fields of one decoded instruction into a single
32-bit word in a byte-aligned layout that the dispatch loop reads directly.
"""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass
from enum import IntEnum, auto
from typing import ClassVar


class Bytecode(IntEnum):
    """Threaded-dispatch bytecodes, most frequently executed first."""

    INVALID = 0

    # Popular instructions
    LD_D = auto()
    MOVE = auto()
    OR = auto()
    ST_D = auto()
    ADDI_W = auto()
    ADDI_D = auto()
    ANDI = auto()
    ADD_D = auto()
    SUB_D = auto()
    ORI = auto()
    SLLI_W = auto()
    SLLI_D = auto()
    LD_BU = auto()
    ST_B = auto()
    ST_W = auto()
    PCADDI = auto()
    PCALAU12I = auto()
    LDPTR_D = auto()
    LDPTR_W = auto()
    STPTR_D = auto()
    LU12I_W = auto()
    BSTRPICK_D = auto()
    AND = auto()
    ALSL_D = auto()
    SRLI_D = auto()
    LD_B = auto()
    STPTR_W = auto()
    LDX_D = auto()
    MASKEQZ = auto()
    MASKNEZ = auto()
    MUL_D = auto()
    SUB_W = auto()
    SLL_D = auto()
    STX_D = auto()
    BSTRPICK_W = auto()
    SLTU = auto()
    LDX_W = auto()
    STX_W = auto()
    XOR = auto()
    LD_HU = auto()
    ADD_W = auto()
    SRAI_D = auto()
    EXT_W_B = auto()
    LDX_BU = auto()
    BSTRINS_D = auto()
    LU32I_D = auto()
    CLO_W = auto()
    CLZ_W = auto()
    CLZ_D = auto()
    REVB_2H = auto()
    BYTEPICK_D = auto()
    SLTI = auto()
    CLO_D = auto()
    ST_H = auto()
    FLD_D = auto()
    FADD_D = auto()
    FMUL_D = auto()
    FST_D = auto()
    SRLI_W = auto()
    SRL_D = auto()
    LU52I_D = auto()
    XORI = auto()
    SLTUI = auto()
    LD_H = auto()
    LDX_HU = auto()
    LD_WU = auto()
    PCADDU12I = auto()
    PCADDU18I = auto()
    ANDN = auto()
    STX_B = auto()
    CTZ_D = auto()
    CTO_W = auto()
    EXT_W_H = auto()
    LDX_B = auto()
    SLT = auto()
    ORN = auto()
    CTO_D = auto()
    MUL_W = auto()
    MOD_DU = auto()
    REVB_4H = auto()

    # LSX (128-bit SIMD)
    VLD = auto()
    VST = auto()
    VFADD_D = auto()
    VLDX = auto()
    VSTX = auto()
    VFMADD_D = auto()
    VFNMADD_D = auto()
    VHADDW_D_W = auto()

    # LASX (256-bit SIMD)
    XVLD = auto()
    XVST = auto()
    XVLDX = auto()
    XVSTX = auto()

    # Floating point
    FMADD_D = auto()
    FLDX_D = auto()
    FSTX_D = auto()

    # Branches
    BEQZ = auto()
    BNEZ = auto()
    BCEQZ = auto()
    BCNEZ = auto()
    BEQ = auto()
    BNE = auto()
    JIRL = auto()
    B = auto()
    BL = auto()
    BLT = auto()
    BGE = auto()
    BLTU = auto()
    BGEU = auto()

    # Generic handlers
    FUNCTION = auto()
    FUNCBLOCK = auto()
    SYSCALL = auto()
    SYSCALLIMM = auto()
    NOP = auto()
    STOP = auto()

    @property
    def mnemonic(self) -> str:
        """Human-readable name of this bytecode."""
        return _SPECIAL_NAMES.get(self, self.name.replace("_", "."))


_SPECIAL_NAMES = {Bytecode.SYSCALLIMM: "SYSCALL+IMM"}

BYTECODES_MAX = len(Bytecode)
assert BYTECODES_MAX <= 256, "A bytecode must fit in a byte"


def bytecode_name(bytecode: int) -> str:
    """Name of ``bytecode``, or "UNKNOWN" if it is not a known bytecode."""
    try:
        return Bytecode(bytecode).mnemonic
    except ValueError:
        return "UNKNOWN"


def sign_extend(value: int, bits: int) -> int:
    """Interpret the low ``bits`` bits of ``value`` as a two's complement number."""
    if bits <= 0:
        raise ValueError(f"bit count must be positive, not {bits}")
    value &= (1 << bits) - 1
    if value & (1 << (bits - 1)):
        value -= 1 << bits
    return value


class OperandFormat:
    """Base of the packed operand formats; subclasses set ``_LAYOUT``."""

    _LAYOUT: ClassVar[str] = "<I"

    def pack(self) -> int:
        """The 32-bit word holding these fields."""
        try:
            raw = struct.pack(self._LAYOUT, *astuple(self))
        except struct.error as exc:
            raise ValueError(f"field out of range for {type(self).__name__}: {exc}") from None
        return int.from_bytes(raw, "little")

    @classmethod
    def unpack(cls, whole: int):
        """Split a 32-bit word into this format's fields."""
        raw = (int(whole) & 0xFFFFFFFF).to_bytes(4, "little")
        return cls(*struct.unpack(cls._LAYOUT, raw))


@dataclass
class RI12(OperandFormat):
    """Register pair with a sign-extended 12-bit immediate."""

    _LAYOUT: ClassVar[str] = "<BBh"
    rd: int = 0
    rj: int = 0
    imm: int = 0

    def set_imm(self, imm12: int) -> None:
        self.imm = sign_extend(imm12, 12)


@dataclass
class R3(OperandFormat):
    """Three register operands."""

    _LAYOUT: ClassVar[str] = "<BBBx"
    rd: int = 0
    rj: int = 0
    rk: int = 0


@dataclass
class Shift(OperandFormat):
    """Register pair with a 5-bit shift amount."""

    _LAYOUT: ClassVar[str] = "<BBBx"
    rd: int = 0
    rj: int = 0
    ui5: int = 0


@dataclass
class Shift64(OperandFormat):
    """Register pair with a 6-bit shift amount."""

    _LAYOUT: ClassVar[str] = "<BBBx"
    rd: int = 0
    rj: int = 0
    ui6: int = 0


@dataclass
class RI20(OperandFormat):
    """Destination register with a 20-bit immediate split into two parts."""

    _LAYOUT: ClassVar[str] = "<BBh"
    rd: int = 0
    imm_lo: int = 0
    imm_hi: int = 0

    def get_imm(self) -> int:
        """The full sign-extended 20-bit immediate."""
        return (self.imm_hi << 8) | self.imm_lo

    def set_imm(self, imm20: int) -> None:
        self.imm_lo = imm20 & 0xFF
        self.imm_hi = sign_extend(imm20 >> 8, 12)


@dataclass
class RI14(OperandFormat):
    """Register pair with a sign-extended 14-bit immediate."""

    _LAYOUT: ClassVar[str] = "<BBh"
    rd: int = 0
    rj: int = 0
    imm14: int = 0

    def set_imm(self, imm: int) -> None:
        self.imm14 = sign_extend(imm, 14)


@dataclass
class BitField(OperandFormat):
    """Register pair with doubleword bit positions."""

    _LAYOUT: ClassVar[str] = "<BBBB"
    rd: int = 0
    rj: int = 0
    lsbd: int = 0
    msbd: int = 0


@dataclass
class BitFieldW(OperandFormat):
    """Register pair with word bit positions."""

    _LAYOUT: ClassVar[str] = "<BBBB"
    rd: int = 0
    rj: int = 0
    lsbw: int = 0
    msbw: int = 0


@dataclass
class R3SA2(OperandFormat):
    """Three registers with a 2-bit shift amount."""

    _LAYOUT: ClassVar[str] = "<BBBB"
    rd: int = 0
    rj: int = 0
    rk: int = 0
    sa2: int = 0


@dataclass
class R2(OperandFormat):
    """Two register operands."""

    _LAYOUT: ClassVar[str] = "<BBxx"
    rd: int = 0
    rj: int = 0


@dataclass
class R3SA3(OperandFormat):
    """Three registers with a 3-bit byte shift amount."""

    _LAYOUT: ClassVar[str] = "<BBBB"
    rd: int = 0
    rj: int = 0
    rk: int = 0
    sa3: int = 0


@dataclass
class RI16(OperandFormat):
    """Register pair with a sign-extended 16-bit immediate."""

    _LAYOUT: ClassVar[str] = "<BBh"
    rd: int = 0
    rj: int = 0
    imm16: int = 0

    def set_imm(self, imm: int) -> None:
        self.imm16 = sign_extend(imm, 16)


@dataclass
class FourR(OperandFormat):
    """Four register operands."""

    _LAYOUT: ClassVar[str] = "<BBBB"
    rd: int = 0
    rj: int = 0
    rk: int = 0
    ra: int = 0


@dataclass
class RI21Branch(OperandFormat):
    """Single-operand branch with a precomputed byte offset."""

    _LAYOUT: ClassVar[str] = "<BBh"
    rj: int = 0
    padding: int = 0
    offset: int = 0

    def set_offset(self, offs: int) -> None:
        self.offset = sign_extend(offs, 16)


@dataclass
class RI16Branch(OperandFormat):
    """Comparison branch with a precomputed byte offset."""

    _LAYOUT: ClassVar[str] = "<BBh"
    rd: int = 0
    rj: int = 0
    offset: int = 0

    def set_offset(self, offs: int) -> None:
        self.offset = sign_extend(offs, 16)