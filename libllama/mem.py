"""Guest memory blocks and the address-space controller that maps them."""

from __future__ import annotations

import bisect
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator

from libllama.regs import IoDevice

KB_SIZE = 1024


class MemoryAccessError(Exception):
    """An access to an unmapped address or outside a block's bounds."""


def _check_bounds(block_len: int, offset: int, size: int) -> None:
    if offset < 0 or size < 0 or offset + size > block_len:
        raise MemoryAccessError(
            f"access of {size} bytes at +0x{offset:X} exceeds block of 0x{block_len:X} bytes"
        )


class MemoryBlock(ABC):
    """A contiguous block of addressable bytes."""

    debuggable: bool = True

    @abstractmethod
    def __len__(self) -> int:
        """Size of the block in bytes."""

    @abstractmethod
    def read_buf(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes starting at ``offset``."""

    @abstractmethod
    def write_buf(self, offset: int, data: bytes) -> None:
        """Write ``data`` starting at ``offset``."""


class UniqueMemoryBlock(MemoryBlock):
    """Plain RAM owned by a single CPU."""

    def __init__(self, kbs: int) -> None:
        self._data = bytearray(kbs * KB_SIZE)

    def __len__(self) -> int:
        return len(self._data)

    def read_buf(self, offset: int, size: int) -> bytes:
        _check_bounds(len(self._data), offset, size)
        return bytes(self._data[offset:offset + size])

    def write_buf(self, offset: int, data: bytes) -> None:
        data = bytes(data)
        _check_bounds(len(self._data), offset, len(data))
        self._data[offset:offset + len(data)] = data


class SharedMemoryBlock(MemoryBlock):
    """RAM shared between threads, locked in 1 KiB nodes."""

    def __init__(self, kbs: int) -> None:
        self._nodes = [bytearray(KB_SIZE) for _ in range(kbs)]
        self._locks = [threading.Lock() for _ in range(kbs)]

    def __len__(self) -> int:
        return len(self._nodes) * KB_SIZE

    def _spans(self, offset: int, size: int) -> Iterator[tuple[int, int, int]]:
        node_index, node_pos = divmod(offset, KB_SIZE)
        while size > 0:
            amount = min(KB_SIZE - node_pos, size)
            yield node_index, node_pos, amount
            size -= amount
            node_index += 1
            node_pos = 0

    def read_buf(self, offset: int, size: int) -> bytes:
        _check_bounds(len(self), offset, size)
        out = bytearray()
        for index, pos, amount in self._spans(offset, size):
            with self._locks[index]:
                out += self._nodes[index][pos:pos + amount]
        return bytes(out)

    def write_buf(self, offset: int, data: bytes) -> None:
        data = bytes(data)
        _check_bounds(len(self), offset, len(data))
        consumed = 0
        for index, pos, amount in self._spans(offset, len(data)):
            with self._locks[index]:
                self._nodes[index][pos:pos + amount] = data[consumed:consumed + amount]
            consumed += amount


class IoMemoryBlock(MemoryBlock):
    """A window of ``size`` bytes onto an IO device's registers."""

    def __init__(self, device: IoDevice, size: int, debuggable: bool = False) -> None:
        self.device = device
        self._size = size
        self.debuggable = debuggable

    def __len__(self) -> int:
        return self._size

    def read_buf(self, offset: int, size: int) -> bytes:
        _check_bounds(self._size, offset, size)
        return self.device.read_reg(offset, size)

    def write_buf(self, offset: int, data: bytes) -> None:
        data = bytes(data)
        _check_bounds(self._size, offset, len(data))
        self.device.write_reg(offset, data)


@dataclass(frozen=True)
class AddressBlockHandle:
    """Identifies a region mapped into a :class:`MemController`."""

    address: int


class MemController:
    """Maps blocks at base addresses and routes accesses to them."""

    def __init__(self) -> None:
        self._starts: list[int] = []
        self._regions: dict[int, MemoryBlock] = {}

    def _match(self, addr: int) -> tuple[int, MemoryBlock] | None:
        i = bisect.bisect_right(self._starts, addr)
        if i == 0:
            return None
        start = self._starts[i - 1]
        block = self._regions[start]
        if addr - start < len(block):
            return start, block
        return None

    def _require(self, addr: int) -> tuple[int, MemoryBlock]:
        matched = self._match(addr)
        if matched is None:
            raise MemoryAccessError(f"Could not match address 0x{addr:X}")
        return matched

    def map_region(self, address: int, region: MemoryBlock) -> AddressBlockHandle:
        """Map ``region`` at ``address``, replacing any region already there."""
        if address not in self._regions:
            bisect.insort(self._starts, address)
        self._regions[address] = region
        return AddressBlockHandle(address)

    def region(self, handle: AddressBlockHandle) -> MemoryBlock:
        try:
            return self._regions[handle.address]
        except KeyError:
            raise MemoryAccessError(
                "Attempted to find region from non-existent handle!"
            ) from None

    def read(self, addr: int, size: int = 4) -> int:
        """Read a little-endian unsigned value of ``size`` bytes."""
        start, block = self._require(addr)
        return int.from_bytes(block.read_buf(addr - start, size), "little")

    def write(self, addr: int, value: int, size: int = 4) -> None:
        """Write ``value`` as a little-endian unsigned value of ``size`` bytes."""
        start, block = self._require(addr)
        block.write_buf(addr - start, value.to_bytes(size, "little"))

    def read_buf(self, addr: int, size: int) -> bytes:
        start, block = self._require(addr)
        return block.read_buf(addr - start, size)

    def debug_read_buf(self, addr: int, size: int) -> bytes:
        """Read for a debugger; refuses IO blocks where reading has side effects."""
        start, block = self._require(addr)
        if not block.debuggable:
            raise MemoryAccessError(f"Cannot issue debug read for IO address 0x{addr:X}")
        return block.read_buf(addr - start, size)

    def write_buf(self, addr: int, data: bytes) -> None:
        start, block = self._require(addr)
        block.write_buf(addr - start, data)