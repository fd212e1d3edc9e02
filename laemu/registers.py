"""The LoongArch register file: general, vector and condition registers."""

from __future__ import annotations

import struct
from enum import IntEnum

_REGNAMES = (
    "zero", "ra", "tp", "sp", "a0", "a1", "a2", "a3",
    "a4", "a5", "a6", "a7", "t0", "t1", "t2", "t3",
    "t4", "t5", "t6", "t7", "t8", "r21", "fp", "s0",
    "s1", "s2", "s3", "s4", "s5", "s6", "s7", "s8",
)


def regname(index: int) -> str:
    """ABI name of general register ``index``, or "unknown"."""
    return _REGNAMES[index] if 0 <= index < 32 else "unknown"


class Reg(IntEnum):
    """Register indices under the LoongArch ABI."""

    ZERO = 0
    RA = 1
    TP = 2
    SP = 3
    A0 = 4
    A1 = 5
    A2 = 6
    A3 = 7
    A4 = 8
    A5 = 9
    A6 = 10
    A7 = 11
    T0 = 12
    T1 = 13
    T2 = 14
    T3 = 15
    T4 = 16
    T5 = 17
    T6 = 18
    T7 = 19
    T8 = 20
    FP = 22
    S0 = 23
    S1 = 24
    S2 = 25
    S3 = 26
    S4 = 27
    S5 = 28
    S6 = 29
    S7 = 30
    S8 = 31
    FA0 = 0
    FA1 = 1
    FS0 = 24


# lane kind -> (struct code, lane size in bytes, is integer, is signed)
_KINDS = {
    "b": ("b", 1, True, True),
    "h": ("h", 2, True, True),
    "w": ("i", 4, True, True),
    "d": ("q", 8, True, True),
    "bu": ("B", 1, True, False),
    "hu": ("H", 2, True, False),
    "wu": ("I", 4, True, False),
    "du": ("Q", 8, True, False),
    "f": ("f", 4, False, False),
    "df": ("d", 8, False, False),
}


def _kind(kind: str) -> tuple[str, int, bool, bool]:
    try:
        return _KINDS[kind]
    except KeyError:
        raise ValueError(f"unknown lane kind: {kind!r}") from None


def _wrap(value: int, size: int, signed: bool) -> int:
    bits = size * 8
    value &= (1 << bits) - 1
    if signed and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


class VectorRegister:
    """A 256-bit LASX register whose low bits alias LSX and FP registers."""

    SIZE = 32

    def __init__(self) -> None:
        self.data = bytearray(self.SIZE)

    def lanes(self, kind: str) -> list:
        """All lanes of the register interpreted as ``kind``."""
        code, size, _, _ = _kind(kind)
        return list(struct.unpack_from(f"<{self.SIZE // size}{code}", self.data))

    def set_lanes(self, kind: str, values) -> None:
        """Write ``values`` into consecutive lanes starting at lane 0."""
        _, size, _, _ = _kind(kind)
        for index, value in enumerate(list(values)[: self.SIZE // size]):
            self.set_lane(kind, index, value)

    def get_lane(self, kind: str, index: int):
        """One lane of the register interpreted as ``kind``."""
        code, size, _, _ = _kind(kind)
        if not 0 <= index < self.SIZE // size:
            raise IndexError(f"lane {index} out of range for kind {kind!r}")
        return struct.unpack_from(f"<{code}", self.data, index * size)[0]

    def set_lane(self, kind: str, index: int, value) -> None:
        """Store ``value`` into one lane, wrapping integers to the lane width."""
        code, size, is_int, signed = _kind(kind)
        if not 0 <= index < self.SIZE // size:
            raise IndexError(f"lane {index} out of range for kind {kind!r}")
        if is_int:
            value = _wrap(int(value), size, signed)
        struct.pack_into(f"<{code}", self.data, index * size, value)

    def clear(self) -> None:
        """Zero every bit of the register."""
        self.data[:] = bytes(self.SIZE)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VectorRegister):
            return NotImplemented
        return self.data == other.data

    def __repr__(self) -> str:
        return f"VectorRegister({self.data.hex()})"


class Registers:
    """General purpose, vector, FCSR and condition-flag registers plus the PC."""

    def __init__(self, width: int = 64) -> None:
        if width not in (32, 64):
            raise ValueError(f"register width must be 32 or 64, not {width}")
        self.width = width
        self.mask = (1 << width) - 1
        self.pc = 0
        self.fcsr = 0
        self._gpr = [0] * 32
        self._vr = [VectorRegister() for _ in range(32)]
        self._fcc = 0

    @staticmethod
    def _check(index: int) -> int:
        index = int(index)
        if not 0 <= index < 32:
            raise IndexError(f"register index {index} out of range")
        return index

    def __getitem__(self, index: int) -> int:
        return self._gpr[self._check(index)]

    def __setitem__(self, index: int, value: int) -> None:
        self._gpr[self._check(index)] = int(value) & self.mask

    def vector(self, index: int) -> VectorRegister:
        """Vector register ``index``, shared with FP register ``index``."""
        return self._vr[self._check(index)]

    def cf(self, index: int) -> int:
        """Floating-point condition flag ``index`` as 0 or 1."""
        return (self._fcc >> index) & 1

    def set_cf(self, index: int, value: int) -> None:
        if value:
            self._fcc |= 1 << index
        else:
            self._fcc &= ~(1 << index) & 0xFF

    def reset(self) -> None:
        """Zero every register and the PC."""
        self.pc = 0
        self._gpr = [0] * 32
        self.fcsr = 0
        self._fcc = 0
        for vr in self._vr:
            vr.clear()

    def copy(self) -> Registers:
        """An independent copy of the whole register file."""
        other = Registers(self.width)
        other.pc = self.pc
        other.fcsr = self.fcsr
        other._fcc = self._fcc
        other._gpr = list(self._gpr)
        for mine, theirs in zip(self._vr, other._vr):
            theirs.data[:] = mine.data
        return other

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Registers):
            return NotImplemented
        return (
            self.width == other.width
            and self.pc == other.pc
            and self.fcsr == other.fcsr
            and self._fcc == other._fcc
            and self._gpr == other._gpr
            and self._vr == other._vr
        )

    def to_string(self) -> str:
        """A dump of the PC and the 32 general registers, four per line."""
        digits = self.width // 4
        lines = [f"PC: 0x{self.pc:0{digits}x}"]
        for row in range(0, 32, 4):
            lines.append(
                "  ".join(
                    f"{regname(i):<5}: 0x{self._gpr[i]:0{digits}x}"
                    for i in range(row, row + 4)
                )
            )
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.to_string()