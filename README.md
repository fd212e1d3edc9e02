# laemu

`laemu` is the core of a LoongArch userspace emulator written in plain
Python with no dependencies beyond the standard library. It models:

- the register file: 32 general purpose registers, 32 256-bit vector
  registers whose low bits double as the floating-point registers, the FCSR
  and eight floating-point condition flags;
- a flat guest memory arena with an unmapped low region, a read-only region
  and a writable region;
- the threaded-dispatch bytecode set and its compact 32-bit operand formats;
- a CPU that runs execute segments of decoded bytecodes, with or without an
  instruction limit, and a machine that owns the CPU, the memory, the
  instruction counters and a table of system call handlers.

## Modules

| Module | What it holds |
| --- | --- |
| `laemu.exceptions` | `ExceptionType`, `MachineException`, `trigger_exception` |
| `laemu.registers` | `Reg`, `VectorRegister`, `Registers`, `regname` |
| `laemu.memory` | `PageAttributes`, `Memory` |
| `laemu.bytecodes` | `Bytecode`, `bytecode_name`, `sign_extend`, `OperandFormat` and the formats `RI12`, `R3`, `Shift`, `Shift64`, `RI20`, `RI14`, `BitField`, `BitFieldW`, `R3SA2`, `R2`, `R3SA3`, `RI16`, `FourR`, `RI21Branch`, `RI16Branch` |
| `laemu.integer_ops` | `integer_handlers()`: arithmetic, logic, shift, bit-field, load/store, floating-point and vector bytecodes |
| `laemu.control_ops` | `control_handlers()`: branches, jumps, system calls, `NOP`, `STOP`, `INVALID` and the generic `FUNCTION`/`FUNCBLOCK` bytecodes |
| `laemu.cpu` | `DecodedInstruction`, `DecodedExecuteSegment`, `CPU` |
| `laemu.machine` | `MachineOptions`, `Machine` |
| `laemu.options` | `EmulatorOptions`, `BytecodeStat`, `ElfError`, `parse_arguments`, `help_text`, `detect_elf_class`, `format_bytecode_statistics` |

## Registers

```python
from laemu.registers import Registers, Reg, regname

regs = Registers(64)
regs[Reg.A0] = 42
regs.set_cf(3, 1)
print(regname(Reg.SP))      # sp
print(regs.cf(3))           # 1
print(regs.to_string())     # PC and all 32 registers, four per line
```

Values written to a general register are truncated to the register width.
Vector registers expose their 256 bits as lanes of a chosen kind (`b`, `h`,
`w`, `d`, their unsigned forms `bu`, `hu`, `wu`, `du`, and `f`, `df` for
floats):

```python
vr = regs.vector(0)
vr.set_lanes("df", [1.5, 2.5])
print(vr.get_lane("df", 1))  # 2.5
```

`Registers.copy()` returns an independent copy and `Registers.reset()` zeroes
everything, including the PC.

## Memory

Guest memory is one arena. Reads below the read-only start or past the end of
the arena, and writes outside the writable region, raise `MachineException`
with `ExceptionType.PROTECTION_FAULT`.

```python
from laemu.memory import Memory
from laemu.exceptions import MachineException

memory = Memory(16 << 20, 0x10000, 0x20000)
memory.write(0x20000, 0xDEADBEEF, 4)
print(hex(memory.read(0x20000, 4)))   # 0xdeadbeef

try:
    memory.write(0x10000, 1, 4)       # read-only region
except MachineException as exc:
    print(exc.type.name, hex(exc.data))
```

`read_bytes`, `write_bytes` and `memset` work on byte ranges, and
`copy_into_arena_unsafe` places data anywhere inside the arena regardless of
permissions.

## Running code

Code is given to the CPU as decoded bytecodes: each `DecodedInstruction`
pairs a `Bytecode` with its operand word packed in that bytecode's operand
format.

```python
from laemu.bytecodes import Bytecode, RI12
from laemu.cpu import DecodedInstruction
from laemu.machine import Machine
from laemu.registers import Reg

machine = Machine()
machine.memory.allocate_custom_arena(16 << 20, 0x10000, 0x20000)
machine.cpu.registers[Reg.SP] = 0x800000

machine.install_syscall_handler(93, lambda m: m.stop())
machine.cpu.init_execute_area(
    [
        DecodedInstruction(Bytecode.ADDI_W, RI12(rd=Reg.A0, rj=Reg.ZERO, imm=8).pack()),
        DecodedInstruction(Bytecode.ADDI_W, RI12(rd=Reg.A7, rj=Reg.ZERO, imm=93).pack()),
        DecodedInstruction(Bytecode.SYSCALL),
    ],
    0x1000,
)
machine.cpu.jump(0x1000)
print(machine.simulate())          # True: a handler stopped the machine
print(machine.return_value("w"))   # 8
```

`Machine.simulate(max_instructions)` runs until the limit is reached or a
handler calls `Machine.stop()`; `Machine.instruction_counter` holds the count
and `Machine.instruction_limit_reached` tells the two apart.
`CPU.simulate_inaccurate` runs without counting and `CPU.simulate_precise`
steps one instruction at a time with `CPU.step_one`.

A system call number outside the handler table raises `MachineException`
with `ILLEGAL_OPERATION`; a number with no handler installed raises one with
`UNIMPLEMENTED_SYSCALL`. Jumping outside every execute segment raises
`EXECUTION_SPACE_PROTECTION_FAULT`, and the `INVALID` bytecode raises
`ILLEGAL_OPCODE`.

The generic `FUNCTION` and `FUNCBLOCK` bytecodes hand a raw instruction word
to `MachineOptions.decoder`, a callable that returns a handler called as
`handler(cpu, instr)`. Without one they raise `UNIMPLEMENTED_INSTRUCTION`.

## Command-line options and statistics

`laemu.options.parse_arguments(argv)` parses an argument vector with the
options `-h/--help`, `-v/--verbose`, `-s/--silent`, `-t/--timing`,
`--precise`, `--stats`, `-f/--fuel <num>` (0 means unlimited) and
`-m/--memory <MiB>`, followed by the program and its arguments, and returns
an `EmulatorOptions`. `help_text(progname)` returns the usage text.
`detect_elf_class(binary)` returns 32 or 64 for an ELF image and raises
`ElfError` otherwise. `format_bytecode_statistics(stats, mnemonic_for)`
renders a table of `BytecodeStat` counts.

## What it does not do

- It does not load ELF files; `detect_elf_class` only reads the header.
- It does not decode raw LoongArch instruction words into bytecodes; execute
  segments are built from `DecodedInstruction` values, and the generic
  bytecodes need a decoder supplied through `MachineOptions`.
- It provides no Linux system calls; every handler is installed by the caller.
- It has no command that runs a program: the option parsing and statistics
  formatting are library functions only.

## Tests

The test suite uses pytest; the `test` extra installs it.

```
pip install -e .[test]
pytest
```