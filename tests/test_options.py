import pytest

from laemu.bytecodes import Bytecode, bytecode_name
from laemu.cpu import UINT64_MAX
from laemu.options import (
    BytecodeStat,
    ElfError,
    EmulatorOptions,
    detect_elf_class,
    format_bytecode_statistics,
    help_text,
    parse_arguments,
)


def test_help_text_mentions_program_name_and_options():
    text = help_text("laemu")
    assert text.startswith("Usage: laemu [options] <program> [args...]\n")
    assert "  laemu --precise program.elf\n" in text
    assert "--fuel <num>" in text
    assert "-m, --memory <size>" in text


def test_defaults():
    opts = parse_arguments(["laemu", "prog.elf"])
    assert opts.binary_path == "prog.elf"
    assert opts.program_args == ["prog.elf"]
    assert opts.max_instructions == UINT64_MAX
    assert opts.memory_max == 512 * 1024 * 1024
    assert opts == EmulatorOptions(binary_path="prog.elf", program_args=["prog.elf"])


def test_flags_and_program_args():
    opts = parse_arguments(
        ["laemu", "-v", "-s", "-t", "--stats", "--precise", "prog.elf", "a1", "a2"]
    )
    assert opts.verbose and opts.silent and opts.timing
    assert opts.show_bytecode_stats and opts.precise
    assert opts.program_args == ["prog.elf", "a1", "a2"]


def test_long_flags():
    opts = parse_arguments(["laemu", "--verbose", "--silent", "--timing", "p"])
    assert (opts.verbose, opts.silent, opts.timing) == (True, True, True)


def test_fuel_and_memory():
    opts = parse_arguments(["laemu", "--fuel", "1000000", "--memory", "256", "p"])
    assert opts.max_instructions == 1000000
    assert opts.memory_max == 256 << 20


def test_short_fuel_attached_value():
    opts = parse_arguments(["laemu", "-f1000", "-m16", "p"])
    assert opts.max_instructions == 1000
    assert opts.memory_max == 16 << 20


def test_zero_fuel_means_unlimited():
    opts = parse_arguments(["laemu", "-f", "0", "p"])
    assert opts.max_instructions == UINT64_MAX


def test_non_numeric_fuel_means_unlimited():
    opts = parse_arguments(["laemu", "--fuel", "abc", "p"])
    assert opts.max_instructions == UINT64_MAX


def test_options_after_program_are_permuted():
    opts = parse_arguments(["laemu", "prog.elf", "-v", "x"])
    assert opts.verbose
    assert opts.program_args == ["prog.elf", "x"]


def test_double_dash_ends_options():
    opts = parse_arguments(["laemu", "--", "prog.elf", "-v"])
    assert not opts.verbose
    assert opts.program_args == ["prog.elf", "-v"]


def test_help_exits_zero(capsys):
    with pytest.raises(SystemExit) as info:
        parse_arguments(["laemu", "--help"])
    assert info.value.code == 0
    assert capsys.readouterr().out == help_text("laemu")


def test_missing_program_exits_one(capsys):
    with pytest.raises(SystemExit) as info:
        parse_arguments(["laemu", "-v"])
    assert info.value.code == 1
    captured = capsys.readouterr()
    assert "Error: No program file specified" in captured.err
    assert captured.out == help_text("laemu")


def test_unknown_option_exits_one():
    with pytest.raises(SystemExit) as info:
        parse_arguments(["laemu", "--bogus", "p"])
    assert info.value.code == 1


def test_missing_option_value_exits_one():
    with pytest.raises(SystemExit) as info:
        parse_arguments(["laemu", "p", "--fuel"])
    assert info.value.code == 1


@pytest.mark.parametrize("cls, expected", [(2, 64), (1, 32)])
def test_detect_elf_class(cls, expected):
    assert detect_elf_class(b"\x7fELF" + bytes([cls]) + bytes(11)) == expected


def test_detect_elf_class_too_small():
    with pytest.raises(ElfError, match="File too small to be a valid ELF binary"):
        detect_elf_class(b"\x7fELF")


def test_detect_elf_class_bad_magic():
    with pytest.raises(ElfError, match="Not a valid ELF binary"):
        detect_elf_class(b"MZ\x00\x00\x02")


def test_detect_elf_class_unknown_class():
    with pytest.raises(ElfError, match="Unknown ELF class: 3"):
        detect_elf_class(b"\x7fELF\x03")


def test_empty_statistics():
    text = format_bytecode_statistics([])
    assert text.startswith("\n=== Bytecode Usage Statistics ===\n\n")
    assert "No bytecode statistics available (decoder cache not populated)" in text
    assert "Total instructions" not in text


def test_statistics_rows_and_total():
    stats = [BytecodeStat(Bytecode.LD_D, 3), BytecodeStat(Bytecode.ADDI_D, 1)]
    text = format_bytecode_statistics(stats)
    lines = text.splitlines()
    assert any(line.startswith(bytecode_name(Bytecode.LD_D)) for line in lines)
    assert any(line.startswith(bytecode_name(Bytecode.ADDI_D)) for line in lines)
    assert lines[-1] == "Total instructions in cache: 4"
    assert "75.00%" in text


def test_function_bytecode_uses_mnemonic():
    stats = [BytecodeStat(Bytecode.FUNCTION, 5, 0x002B0000)]
    text = format_bytecode_statistics(stats, lambda instr: "syscall 0x0")
    row = next(line for line in text.splitlines() if line.startswith("FUNCTION"))
    assert row.endswith("(syscall)")


def test_function_bytecode_falls_back_to_hex():
    def broken(instr):
        raise RuntimeError("no printer")

    stats = [
        BytecodeStat(Bytecode.FUNCBLOCK, 2, 0x002B0000),
        BytecodeStat(Bytecode.FUNCTION, 2, 0x02802004),
    ]
    text = format_bytecode_statistics(stats, broken)
    assert "(0x002b0000)" in text
    assert "(0x02802004)" in text
    plain = format_bytecode_statistics(stats)
    assert "(0x002b0000)" in plain


def test_plain_bytecode_has_no_sample_label():
    stats = [BytecodeStat(Bytecode.OR, 1, 0x1234)]
    text = format_bytecode_statistics(stats, lambda instr: "or")
    row = next(line for line in text.splitlines() if line.startswith("OR"))
    assert "(" not in row
    assert row.endswith("%")