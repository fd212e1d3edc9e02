"""Command-line options, ELF class detection and bytecode statistics output."""

from __future__ import annotations

import getopt
import math
import re
import sys
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence

from .bytecodes import Bytecode, bytecode_name
from .cpu import UINT64_MAX

ELFCLASS32 = 1
ELFCLASS64 = 2

DEFAULT_MEMORY_MAX = 512 * 1024 * 1024

_SHORT_OPTIONS = "hvstf:m:"
_LONG_OPTIONS = [
    "help",
    "verbose",
    "precise",
    "silent",
    "timing",
    "stats",
    "fuel=",
    "memory=",
]

_NUMBER = re.compile(r"\s*([+-]?)(\d+)")


@dataclass
class EmulatorOptions:
    """Settings for one emulator run, as given on the command line."""

    binary_path: str = ""
    program_args: List[str] = field(default_factory=list)
    max_instructions: int = UINT64_MAX
    memory_max: int = DEFAULT_MEMORY_MAX
    verbose: bool = False
    precise: bool = False
    timing: bool = False
    silent: bool = False
    show_bytecode_stats: bool = False


@dataclass(frozen=True)
class BytecodeStat:
    """How often one bytecode occurs, with a sample raw instruction."""

    bytecode: int
    count: int
    sample_instruction: int = 0


class ElfError(ValueError):
    """The file is not an ELF binary the emulator can run."""


def help_text(progname: str) -> str:
    """The usage message printed by ``--help``."""
    return (
        f"Usage: {progname} [options] <program> [args...]\n\n"
        "LoongArch Emulator - Execute LoongArch ELF binaries\n\n"
        "Options:\n"
        "  -h, --help              Show this help message\n"
        "  -v, --verbose           Enable verbose output (loader & syscalls)\n"
        "  -s, --silent            Suppress all output except errors\n"
        "      --precise           Use precise simulation mode (slower)\n"
        "  -t, --timing            Show execution timing and instruction count\n"
        "      --stats             Show bytecode usage statistics after execution\n"
        "  -f, --fuel <num>        Maximum instructions to execute (default: 2000000000)\n"
        "                          Use 0 for unlimited execution\n"
        "  -m, --memory <size>     Maximum memory in MiB (default: 512)\n\n"
        "The emulator automatically detects LA32/LA64 architecture from the ELF binary.\n\n"
        "Examples:\n"
        f"  {progname} program.elf\n"
        f"  {progname} --verbose --timing program.elf arg1 arg2\n"
        f"  {progname} --stats --fuel 1000000 program.elf\n"
        f"  {progname} --fuel 1000000 --memory 256 program.elf\n\n"
        "Check if fast-path differs from slow-path (precise):\n"
        f"  {progname} --precise program.elf\n\n"
    )


def _strtoull(text: str) -> int:
    """Parse a leading unsigned decimal number the way the C library does."""
    match = _NUMBER.match(text)
    if match is None:
        return 0
    value = int(match.group(2))
    if value > UINT64_MAX:
        return UINT64_MAX
    if match.group(1) == "-":
        value = -value & UINT64_MAX
    return value


def parse_arguments(argv: Optional[Sequence[str]] = None) -> EmulatorOptions:
    """Parse a full argument vector (``argv[0]`` is the program name).

    Prints help and raises ``SystemExit(0)`` for ``--help``; prints an error
    and help and raises ``SystemExit(1)`` on bad usage.
    """
    if argv is None:
        argv = sys.argv
    argv = list(argv)
    progname = argv[0] if argv else "laemu"
    opts = EmulatorOptions()

    try:
        parsed, rest = getopt.gnu_getopt(argv[1:], _SHORT_OPTIONS, _LONG_OPTIONS)
    except getopt.GetoptError as exc:
        sys.stderr.write(f"{progname}: {exc}\n")
        sys.stdout.write(help_text(progname))
        raise SystemExit(1) from None

    for name, value in parsed:
        if name in ("-h", "--help"):
            sys.stdout.write(help_text(progname))
            raise SystemExit(0)
        if name in ("-v", "--verbose"):
            opts.verbose = True
        elif name in ("-s", "--silent"):
            opts.silent = True
        elif name in ("-t", "--timing"):
            opts.timing = True
        elif name in ("-f", "--fuel"):
            opts.max_instructions = _strtoull(value) or UINT64_MAX
        elif name in ("-m", "--memory"):
            opts.memory_max = (_strtoull(value) << 20) & UINT64_MAX
        elif name == "--stats":
            opts.show_bytecode_stats = True
        elif name == "--precise":
            opts.precise = True

    if not rest:
        sys.stderr.write("Error: No program file specified\n\n")
        sys.stdout.write(help_text(progname))
        raise SystemExit(1)

    opts.binary_path = rest[0]
    opts.program_args = list(rest)
    return opts


def detect_elf_class(binary: bytes) -> int:
    """Return 32 or 64 for an LA32 or LA64 ELF image; raise ElfError otherwise."""
    if len(binary) < 5:
        raise ElfError("File too small to be a valid ELF binary")
    if bytes(binary[:4]) != b"\x7fELF":
        raise ElfError("Not a valid ELF binary")
    elf_class = binary[4]
    if elf_class == ELFCLASS64:
        return 64
    if elf_class == ELFCLASS32:
        return 32
    raise ElfError(f"Unknown ELF class: {elf_class}")


def _sample_label(
    stat: BytecodeStat, mnemonic_for: Optional[Callable[[int], Optional[str]]]
) -> str:
    hex_label = f"0x{stat.sample_instruction:08x}"
    if mnemonic_for is None:
        return hex_label
    try:
        text = mnemonic_for(stat.sample_instruction)
    except Exception:
        return hex_label
    if not text:
        return hex_label
    return text.split(" ", 1)[0]


def format_bytecode_statistics(
    stats: Iterable[BytecodeStat],
    mnemonic_for: Optional[Callable[[int], Optional[str]]] = None,
) -> str:
    """Render a bytecode usage table.

    ``mnemonic_for`` turns a raw instruction word into its disassembly; it is
    used to label the generic FUNCTION and FUNCBLOCK bytecodes.
    """
    stats = list(stats)
    out = ["\n=== Bytecode Usage Statistics ===\n\n"]
    if not stats:
        out.append("No bytecode statistics available (decoder cache not populated)\n")
        return "".join(out)

    total = sum(stat.count for stat in stats)
    out.append("%-20s %12s %10s\n" % ("Bytecode", "Count", "Percentage"))
    out.append("%-20s %12s %10s\n" % ("--------", "-----", "----------"))

    generic = (Bytecode.FUNCTION, Bytecode.FUNCBLOCK)
    for stat in stats:
        name = bytecode_name(stat.bytecode)
        percentage = (100.0 * stat.count) / total if total else math.nan
        row = "%-20s %12d %9.2f%%" % (name, stat.count, percentage)
        if stat.bytecode in generic and stat.sample_instruction != 0:
            row += f" ({_sample_label(stat, mnemonic_for)})"
        out.append(row + "\n")

    out.append(f"\nTotal instructions in cache: {total}\n")
    return "".join(out)