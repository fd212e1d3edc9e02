"""LoongArch emulator core: registers, guest memory, bytecodes, CPU, machine and option parsing."""

__version__ = "0.1.0"

__all__ = [
    "bytecodes",
    "control_ops",
    "cpu",
    "exceptions",
    "integer_ops",
    "machine",
    "memory",
    "options",
    "registers",
]