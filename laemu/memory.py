"""Flat guest memory arena with read-only and writable regions."""

from __future__ import annotations

from dataclasses import dataclass

from .exceptions import ExceptionType, MachineException


@dataclass
class PageAttributes:
    """Access permissions of a memory page."""

    read: bool = True
    write: bool = True
    exec: bool = False
    user: bool = True


class Memory:
    """A guest arena: addresses below ``rodata_start`` are unmapped,
    ``[rodata_start, data_start)`` is read-only and the rest is writable."""

    def __init__(self, arena_size: int = 0, rodata_start: int = 0, data_start: int = 0) -> None:
        self.start_address = 0
        self.stack_address = 0
        self.allocate_custom_arena(arena_size, rodata_start, data_start)

    def allocate_custom_arena(self, size: int, rodata_start: int, data_start: int) -> None:
        """Replace the arena with a zeroed one of ``size`` bytes."""
        if not 0 <= rodata_start <= data_start <= size:
            raise ValueError(
                "arena layout must satisfy 0 <= rodata_start <= data_start <= size"
            )
        self._arena = bytearray(size)
        self.rodata_start = rodata_start
        self.data_start = data_start

    @property
    def arena_size(self) -> int:
        return len(self._arena)

    def is_writable(self, addr: int, length: int) -> bool:
        """Whether ``length`` bytes at ``addr`` lie in the writable region."""
        return addr >= self.data_start and addr + length <= self.arena_size

    def _check_read(self, addr: int, length: int) -> None:
        if addr < self.rodata_start or addr + length > self.arena_size:
            raise MachineException(
                ExceptionType.PROTECTION_FAULT, "Read from unmapped memory", addr
            )

    def _check_write(self, addr: int, length: int) -> None:
        if not self.is_writable(addr, length):
            raise MachineException(
                ExceptionType.PROTECTION_FAULT, "Write to read-only memory", addr
            )

    def read(self, addr: int, size: int = 8, signed: bool = False) -> int:
        """Read a little-endian integer of ``size`` bytes."""
        self._check_read(addr, size)
        return int.from_bytes(self._arena[addr:addr + size], "little", signed=signed)

    def write(self, addr: int, value: int, size: int = 8) -> None:
        """Write the low ``size`` bytes of ``value``, little-endian."""
        self._check_write(addr, size)
        value &= (1 << (size * 8)) - 1
        self._arena[addr:addr + size] = value.to_bytes(size, "little")

    def read_bytes(self, addr: int, length: int) -> bytes:
        """Copy ``length`` bytes out of readable memory."""
        if addr < self.rodata_start or addr + length >= self.arena_size:
            raise MachineException(
                ExceptionType.PROTECTION_FAULT, "Read from unmapped memory", addr
            )
        return bytes(self._arena[addr:addr + length])

    def write_bytes(self, addr: int, data: bytes) -> None:
        """Copy ``data`` into writable memory."""
        self._check_write(addr, len(data))
        self._arena[addr:addr + len(data)] = data

    def memset(self, addr: int, value: int, length: int) -> None:
        """Fill ``length`` bytes of writable memory with ``value``."""
        self._check_write(addr, length)
        self._arena[addr:addr + length] = bytes([value & 0xFF]) * length

    def copy_into_arena_unsafe(self, addr: int, data: bytes) -> None:
        """Copy ``data`` into the arena ignoring permissions (host setup only)."""
        if addr < 0 or addr + len(data) > self.arena_size:
            raise MachineException(
                ExceptionType.PROTECTION_FAULT, "Copy outside of memory arena", addr
            )
        self._arena[addr:addr + len(data)] = data