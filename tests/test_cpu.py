import pytest

from laemu.bytecodes import RI12, Bytecode, RI21Branch
from laemu.cpu import DecodedExecuteSegment, DecodedInstruction
from laemu.exceptions import ExceptionType, MachineException
from laemu.machine import Machine, MachineOptions
from laemu.registers import Reg

BASE = 0x1000


def make_machine(**kwargs):
    machine = Machine(MachineOptions(**kwargs))
    machine.install_syscall_handler(93, lambda m: m.stop())
    return machine


def addi_d(rd, rj, imm):
    return DecodedInstruction(Bytecode.ADDI_D, RI12(int(rd), int(rj), imm).pack())


EXIT = [addi_d(Reg.A7, Reg.ZERO, 93), DecodedInstruction(Bytecode.SYSCALL)]
STOP = DecodedInstruction(Bytecode.STOP)
LOOPS = 5


def countdown():
    return [
        addi_d(Reg.T0, Reg.ZERO, LOOPS),
        addi_d(Reg.T0, Reg.T0, -1),
        DecodedInstruction(Bytecode.BNEZ, RI21Branch(rj=int(Reg.T0), offset=-4).pack()),
        STOP,
    ]


def test_simulate_runs_to_exit_syscall():
    m = make_machine()
    prog = [addi_d(Reg.A0, Reg.ZERO, 8), *EXIT]
    m.cpu.init_execute_area(prog, BASE)
    assert m.cpu.simulate(BASE, 0, 1000) is True
    assert m.cpu.registers[Reg.A0] == 8
    assert m.instruction_counter == len(prog)
    assert m.cpu.pc == BASE + 4 * len(prog)
    assert m.stopped


def test_branch_loop_counts_every_instruction():
    m = make_machine()
    m.cpu.init_execute_area(countdown(), BASE)
    assert m.cpu.simulate(BASE, 0, 1000)
    assert m.cpu.registers[Reg.T0] == 0
    assert m.instruction_counter == 1 + 2 * LOOPS + 1
    assert m.cpu.pc == BASE + 12


def test_instruction_limit_stops_infinite_loop():
    m = make_machine()
    m.cpu.init_execute_area([DecodedInstruction(Bytecode.B, 0)], BASE)
    assert m.cpu.simulate(BASE, 0, 100) is False
    assert m.instruction_counter == 100
    assert m.instruction_limit_reached
    assert m.cpu.pc == BASE


def test_memory_store_and_load():
    m = make_machine()
    m.memory.allocate_custom_arena(1 << 20, 0x10000, 0x20000)
    m.cpu.registers[Reg.T1] = 0x20000
    prog = [
        addi_d(Reg.T0, Reg.ZERO, -2),
        DecodedInstruction(Bytecode.ST_D, RI12(int(Reg.T0), int(Reg.T1), 8).pack()),
        DecodedInstruction(Bytecode.LD_D, RI12(int(Reg.A0), int(Reg.T1), 8).pack()),
        STOP,
    ]
    m.cpu.init_execute_area(prog, BASE)
    m.cpu.simulate(BASE, 0, 100)
    assert m.cpu.registers[Reg.A0] == (1 << 64) - 2
    assert m.memory.read(0x20008, 8, True) == -2


def test_store_to_readonly_raises_and_keeps_counter():
    m = make_machine()
    m.memory.allocate_custom_arena(1 << 20, 0x10000, 0x20000)
    m.cpu.registers[Reg.T1] = 0x10000
    prog = [addi_d(Reg.T0, Reg.ZERO, 1),
            DecodedInstruction(Bytecode.ST_D, RI12(int(Reg.T0), int(Reg.T1), 0).pack())]
    m.cpu.init_execute_area(prog, BASE)
    with pytest.raises(MachineException) as info:
        m.cpu.simulate(BASE, 0, 100)
    assert info.value.type == ExceptionType.PROTECTION_FAULT
    assert m.instruction_counter == 2
    assert m.cpu.pc == BASE + 4


def test_invalid_bytecode_raises_illegal_opcode():
    m = make_machine()
    m.cpu.init_execute_area([DecodedInstruction(Bytecode.INVALID, 0xDEAD)], BASE)
    with pytest.raises(MachineException) as info:
        m.cpu.simulate(BASE, 0, 100)
    assert info.value.type == ExceptionType.ILLEGAL_OPCODE
    assert info.value.data == 0xDEAD
    assert m.instruction_counter == 1
    assert m.cpu.pc == BASE


def test_jump_outside_segments_faults():
    m = make_machine()
    m.cpu.init_execute_area([STOP], BASE)
    with pytest.raises(MachineException) as info:
        m.cpu.next_execute_segment(0x5000)
    assert info.value.type == ExceptionType.EXECUTION_SPACE_PROTECTION_FAULT
    assert info.value.data == 0x5000


def test_execution_moves_between_segments():
    m = make_machine()
    first = m.cpu.init_execute_area([DecodedInstruction(Bytecode.B, 0x1000)], BASE)
    second = m.cpu.init_execute_area([addi_d(Reg.A0, Reg.ZERO, 3), STOP], 0x2000)
    assert m.cpu.current_execute_segment is second
    assert m.cpu.simulate(BASE, 0, 100)
    assert m.cpu.registers[Reg.A0] == 3
    assert m.cpu.current_execute_segment is second
    assert m.cpu.next_execute_segment(BASE) is first


def test_is_executable_and_segment_bounds():
    m = make_machine()
    seg = m.cpu.init_execute_area([STOP, STOP], BASE)
    assert seg.end == BASE + 8
    assert m.cpu.is_executable(BASE + 4)
    assert not m.cpu.is_executable(BASE + 8)
    assert not m.cpu.is_executable(BASE - 4)


def test_segment_at_rejects_misaligned_and_outside():
    seg = DecodedExecuteSegment(BASE, [(Bytecode.NOP, 0), Bytecode.STOP])
    assert seg.at(BASE + 4).bytecode == Bytecode.STOP
    with pytest.raises(MachineException) as info:
        seg.at(BASE + 2)
    assert info.value.type == ExceptionType.MISALIGNED_INSTRUCTION
    with pytest.raises(MachineException) as info:
        seg.at(BASE + 8)
    assert info.value.type == ExceptionType.EXECUTION_SPACE_PROTECTION_FAULT


def test_step_one_advances_pc_and_counter():
    m = make_machine()
    m.cpu.init_execute_area([addi_d(Reg.A0, Reg.ZERO, 7), STOP], BASE)
    m.cpu.jump(BASE)
    m.instruction_counter = 0
    m.cpu.step_one()
    assert m.cpu.pc == BASE + 4
    assert m.instruction_counter == 1
    assert m.cpu.registers[Reg.A0] == 7
    m.cpu.step_one(False)
    assert m.stopped
    assert m.instruction_counter == 1


def test_precise_matches_fast_simulation():
    fast = make_machine()
    fast.cpu.init_execute_area(countdown(), BASE)
    fast.cpu.simulate(BASE, 0, 1000)

    precise = make_machine()
    precise.cpu.init_execute_area(countdown(), BASE)
    precise.cpu.jump(BASE)
    precise.max_instructions = 1000
    precise.instruction_counter = 0
    precise.cpu.simulate_precise()

    assert precise.cpu.registers == fast.cpu.registers
    assert precise.instruction_counter == fast.instruction_counter
    assert precise.stopped


def test_simulate_inaccurate_runs_until_exit():
    m = make_machine()
    prog = [addi_d(Reg.A0, Reg.ZERO, 8), *EXIT]
    m.cpu.init_execute_area(prog, BASE)
    m.cpu.simulate_inaccurate(BASE)
    assert m.stopped
    assert m.cpu.registers[Reg.A0] == 8
    assert m.cpu.pc == BASE + 4 * len(prog)


def test_execute_without_decoder_is_unimplemented():
    m = make_machine()
    with pytest.raises(MachineException) as info:
        m.cpu.execute(0x1234)
    assert info.value.type == ExceptionType.UNIMPLEMENTED_INSTRUCTION
    assert info.value.data == 0x1234


def test_function_bytecode_uses_decoder():
    def decoder(word):
        return lambda cpu, instr: cpu.registers.__setitem__(Reg.A0, instr)

    m = make_machine(decoder=decoder)
    m.cpu.init_execute_area([DecodedInstruction(Bytecode.FUNCTION, 0x123), STOP], BASE)
    m.cpu.simulate(BASE, 0, 100)
    assert m.cpu.registers[Reg.A0] == 0x123


def test_jump_requires_alignment():
    m = make_machine()
    m.cpu.jump(0x2000)
    assert m.cpu.pc == 0x2000
    with pytest.raises(MachineException) as info:
        m.cpu.jump(0x2002)
    assert info.value.type == ExceptionType.MISALIGNED_INSTRUCTION


def test_reset_uses_memory_layout():
    m = make_machine()
    m.memory.start_address = 0x2000
    m.memory.stack_address = 0x8000
    m.cpu.registers[Reg.A0] = 5
    m.cpu.reset()
    assert m.cpu.pc == 0x2000
    assert m.cpu.registers[Reg.SP] == 0x8000
    assert m.cpu.registers[Reg.A0] == 0


def test_misaligned_execute_area_rejected():
    m = make_machine()
    with pytest.raises(MachineException) as info:
        m.cpu.init_execute_area([STOP], BASE + 2)
    assert info.value.type == ExceptionType.MISALIGNED_INSTRUCTION