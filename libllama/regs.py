"""Memory-mapped IO registers and declarative register-file devices."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Optional

log = logging.getLogger(__name__)


class RegisterError(Exception):
    """An access that no register or range of a device can serve."""


def _field_mask(lo: int, hi: int) -> int:
    if lo < 0 or hi < lo:
        raise ValueError(f"invalid bit range {lo}:{hi}")
    return (1 << (hi - lo + 1)) - 1


def get_bits(value: int, lo: int, hi: int) -> int:
    """Extract the inclusive bit field ``lo..=hi`` of ``value``."""
    return (value >> lo) & _field_mask(lo, hi)


def set_bits(value: int, lo: int, hi: int, field: int) -> int:
    """Return ``value`` with the inclusive bit field ``lo..=hi`` replaced by ``field``."""
    mask = _field_mask(lo, hi)
    return (value & ~(mask << lo)) | ((field & mask) << lo)


class IoReg:
    """A register of ``size`` bytes whose guest writes touch only ``write_bits``."""

    def __init__(self, val: int, write_bits: int, size: int) -> None:
        if size <= 0:
            raise ValueError("register size must be positive")
        self.size = size
        self._mask = (1 << (8 * size)) - 1
        self.write_bits = write_bits & self._mask
        self.val = val & self._mask

    def set(self, new_val: int) -> None:
        """Guest-style write: only bits in ``write_bits`` change."""
        self.val = (self.val & ~self.write_bits) | (new_val & self.write_bits)
        self.val &= self._mask

    def set_unchecked(self, new_val: int) -> None:
        self.val = new_val & self._mask

    def or_bits(self, bits: int) -> None:
        self.val = (self.val | bits) & self._mask

    def clear_bits(self, bits: int) -> None:
        self.val &= ~bits & self._mask

    def mem_load(self) -> bytes:
        """The register's value as little-endian bytes."""
        return self.val.to_bytes(self.size, "little")

    def mem_save(self, data: bytes) -> None:
        """Overwrite the whole value from little-endian bytes."""
        if len(data) != self.size:
            raise ValueError(f"expected {self.size} bytes, got {len(data)}")
        self.val = int.from_bytes(bytes(data), "little")

    def __repr__(self) -> str:
        return f"IoReg(val=0x{self.val:X}, write_bits=0x{self.write_bits:X}, size={self.size})"


RegEffect = Callable[[Any], None]
RangeRead = Callable[[Any, int, int], bytes]
RangeWrite = Callable[[Any, int, bytes], None]


@dataclass(frozen=True)
class RegSpec:
    """Declaration of one register: where it sits and what accessing it does."""

    offset: int
    name: str
    size: int
    default: int = 0
    write_bits: Optional[int] = None
    read_effect: Optional[RegEffect] = None
    write_effect: Optional[RegEffect] = None


@dataclass(frozen=True)
class RangeSpec:
    """Declaration of a block of addresses served by callbacks.

    ``read_effect(dev, pos, size)`` returns the bytes read;
    ``write_effect(dev, pos, data)`` consumes written bytes.
    """

    offset: int
    size: int
    read_effect: Optional[RangeRead] = None
    write_effect: Optional[RangeWrite] = None

    def contains(self, offset: int) -> bool:
        return self.offset <= offset < self.offset + self.size


class IoDevice:
    """Base for devices described by ``REGS`` and ``RANGES`` class attributes.

    Each register becomes an :class:`IoReg` reachable as ``dev.reg(name)``
    and as the attribute of the same name.
    """

    REGS: ClassVar[tuple[RegSpec, ...]] = ()
    RANGES: ClassVar[tuple[RangeSpec, ...]] = ()

    def __init__(self) -> None:
        self._specs: dict[int, RegSpec] = {}
        self._regs: dict[str, IoReg] = {}
        for spec in self.REGS:
            full = (1 << (8 * spec.size)) - 1
            write_bits = full if spec.write_bits is None else spec.write_bits
            reg = IoReg(spec.default, write_bits, spec.size)
            self._specs[spec.offset] = spec
            self._regs[spec.name] = reg
            setattr(self, spec.name, reg)

    @property
    def _device_name(self) -> str:
        return type(self).__name__

    def reg(self, name: str) -> IoReg:
        try:
            return self._regs[name]
        except KeyError:
            raise RegisterError(f"{self._device_name} has no register `{name}`") from None

    def _find_range(self, offset: int) -> Optional[RangeSpec]:
        return next((r for r in self.RANGES if r.contains(offset)), None)

    def _check_reg_access(self, spec: RegSpec, size: int, offset: int) -> None:
        if size <= 0 or size % spec.size:
            raise RegisterError(
                f"{size} byte access to {self._device_name}+0x{offset:X} "
                f"is not a multiple of register size {spec.size}"
            )

    def read_reg(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes at ``offset``, running read effects."""
        log.debug("Reading from %s at +0x%X", self._device_name, offset)
        spec = self._specs.get(offset)
        if spec is not None:
            self._check_reg_access(spec, size, offset)
            if spec.read_effect is not None:
                spec.read_effect(self)
            out = self._regs[spec.name].mem_load()
            if size > spec.size:
                out += self.read_reg(offset + spec.size, size - spec.size)
            return out

        rng = self._find_range(offset)
        if rng is not None:
            if offset + size > rng.offset + rng.size:
                raise RegisterError(
                    f"{size} byte read from {self._device_name}+0x{offset:X} overruns its range"
                )
            if rng.read_effect is None:
                return bytes(size)
            return bytes(rng.read_effect(self, offset - rng.offset, size))

        raise RegisterError(
            f"Unhandled {self._device_name} register read: {size} bytes @ 0x{offset:X}"
        )

    def write_reg(self, offset: int, data: bytes) -> None:
        """Write ``data`` at ``offset``, running write effects."""
        log.debug("Writing to %s at +0x%X", self._device_name, offset)
        data = bytes(data)
        size = len(data)
        spec = self._specs.get(offset)
        if spec is not None:
            self._check_reg_access(spec, size, offset)
            self._regs[spec.name].mem_save(data[: spec.size])
            if spec.write_effect is not None:
                spec.write_effect(self)
            if size > spec.size:
                self.write_reg(offset + spec.size, data[spec.size:])
            return

        rng = self._find_range(offset)
        if rng is not None:
            if offset + size > rng.offset + rng.size:
                raise RegisterError(
                    f"{size} byte write to {self._device_name}+0x{offset:X} overruns its range"
                )
            if rng.write_effect is not None:
                rng.write_effect(self, offset - rng.offset, data)
            return

        raise RegisterError(
            f"Unhandled {self._device_name} register write: {size} bytes @ 0x{offset:X}"
        )