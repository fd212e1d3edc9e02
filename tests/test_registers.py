import pytest

from laemu.registers import Reg, Registers, VectorRegister, regname


def test_regname_known_and_unknown():
    assert regname(0) == "zero"
    assert regname(3) == "sp"
    assert regname(21) == "r21"
    assert regname(31) == "s8"
    assert regname(32) == "unknown"


def test_reg_indices_match_abi():
    assert regname(Reg.SP) == "sp"
    assert regname(Reg.A0) == "a0"
    assert regname(Reg.A7) == "a7"
    assert regname(Reg.FP) == "fp"
    regs = Registers()
    regs[Reg.SP] = 0x1234
    assert regs[3] == 0x1234
    regs[Reg.A0] = 42
    assert regs[4] == 42
    regs.vector(Reg.FA0).set_lane("du", 0, 7)
    assert regs.vector(0).get_lane("du", 0) == 7
    regs.vector(Reg.FS0).set_lane("du", 0, 9)
    assert regs.vector(24).get_lane("du", 0) == 9


def test_gpr_write_masks_to_width():
    regs = Registers(64)
    regs[Reg.A0] = -1
    assert regs[Reg.A0] == (1 << 64) - 1
    regs32 = Registers(32)
    regs32[Reg.A0] = -1
    assert regs32[Reg.A0] == (1 << 32) - 1


def test_gpr_index_out_of_range():
    regs = Registers()
    regs[31] = 5
    assert regs[31] == 5
    with pytest.raises(IndexError):
        regs[32]
    with pytest.raises(IndexError):
        regs[-1] = 3
    assert regs[31] == 5


def test_invalid_width():
    with pytest.raises(ValueError):
        Registers(16)


def test_condition_flags():
    regs = Registers()
    regs.set_cf(3, 1)
    assert regs.cf(3) == 1
    assert regs.cf(2) == 0
    regs.set_cf(3, 0)
    assert regs.cf(3) == 0


def test_vector_lane_round_trip():
    vr = VectorRegister()
    vr.set_lanes("df", [1.5, -2.25])
    assert vr.lanes("df")[:2] == [1.5, -2.25]
    assert vr.get_lane("df", 1) == -2.25


def test_vector_lanes_alias_each_other():
    vr = VectorRegister()
    vr.set_lane("du", 0, (1 << 64) - 1)
    assert vr.get_lane("d", 0) == -1
    assert vr.lanes("bu")[:8] == [0xFF] * 8
    assert vr.lanes("bu")[8:] == [0] * 24


def test_vector_set_lane_wraps_integers():
    vr = VectorRegister()
    vr.set_lane("w", 0, 1 << 32)
    assert vr.get_lane("w", 0) == 0
    vr.set_lane("bu", 1, -1)
    assert vr.get_lane("bu", 1) == 0xFF


def test_vector_set_lanes_ignores_excess():
    vr = VectorRegister()
    vr.set_lanes("du", range(1, 10))
    assert vr.lanes("du") == [1, 2, 3, 4]


def test_vector_bad_kind_and_index():
    vr = VectorRegister()
    with pytest.raises(ValueError):
        vr.lanes("x")
    with pytest.raises(IndexError):
        vr.get_lane("du", 4)


def test_vector_clear():
    vr = VectorRegister()
    vr.set_lanes("wu", [7] * 8)
    vr.clear()
    assert vr.lanes("wu") == [0] * 8


def test_reset_zeroes_everything():
    regs = Registers()
    regs.pc = 0x1000
    regs[Reg.SP] = 0x800000
    regs.fcsr = 5
    regs.set_cf(0, 1)
    regs.vector(2).set_lane("df", 0, 3.0)
    regs.reset()
    assert regs == Registers()


def test_copy_is_independent():
    regs = Registers()
    regs[Reg.A1] = 9
    regs.vector(1).set_lane("du", 0, 9)
    dup = regs.copy()
    assert dup == regs
    dup[Reg.A1] = 10
    dup.vector(1).set_lane("du", 0, 10)
    assert regs[Reg.A1] == 9
    assert regs.vector(1).get_lane("du", 0) == 9


def test_to_string_layout():
    regs = Registers(64)
    regs.pc = 0x1000
    lines = regs.to_string().splitlines()
    assert len(lines) == 9
    assert lines[0] == "PC: 0x" + format(0x1000, "016x")
    assert lines[1].startswith("zero : 0x")
    assert "sp   : 0x" in lines[1]


def test_to_string_uses_width_digits():
    regs = Registers(32)
    text = regs.to_string()
    assert text.splitlines()[0] == "PC: 0x" + "0" * 8