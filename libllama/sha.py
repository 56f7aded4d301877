"""The SHA hashing engine."""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Callable, Optional

from libllama.regs import IoDevice, RangeSpec, RegisterError, RegSpec, get_bits, set_bits

log = logging.getLogger(__name__)

DmaTrigger = Callable[[], None]

_HASH_SIZE = 32

# CNT bits
_BUSY = 0
_FINAL_ROUND = 1
_BIG_ENDIAN = 3
_MODE_LO, _MODE_HI = 4, 5
_UNIMPLEMENTED_BITS = 0xFFFF00C0

_MODES = {0b00: "sha256", 0b01: "sha224"}


class ShaDeviceState:
    """Running hash, last digest and the DMA triggers of the SHA engine.

    ``dma_in`` and ``dma_out`` are called to signal the DMA controller.
    """

    def __init__(self, dma_in: DmaTrigger, dma_out: DmaTrigger) -> None:
        self.hasher: Optional[Any] = None
        self.hash = bytes(_HASH_SIZE)
        self.dma_in = dma_in
        self.dma_out = dma_out

    def __repr__(self) -> str:
        active = "active" if self.hasher is not None else "inactive"
        return f"ShaDeviceState(hasher={active})"


def _cnt_update(dev: "ShaDevice") -> None:
    cnt = dev.cnt.val
    state = dev.state
    log.debug("Wrote 0x%08X to SHA CNT register!", cnt)
    log.debug("SHA hasher state: %s", "active" if state.hasher is not None else "inactive")
    if cnt & _UNIMPLEMENTED_BITS:
        log.warning("Wrote UNIMPLEMENTED bits 0x%08X to SHA CNT register!", cnt)

    if get_bits(cnt, _FINAL_ROUND, _FINAL_ROUND):
        log.debug("Reached end of SHA final round!")
        if state.hasher is not None:
            digest = state.hasher.digest()
            # Finishing leaves the hasher ready for a fresh message.
            state.hasher = hashlib.new(state.hasher.name)
            log.debug("SHA output hash: %s", digest.hex())
            state.hash = digest.ljust(_HASH_SIZE, b"\x00")
        state.dma_out()
        cnt = set_bits(cnt, _FINAL_ROUND, _FINAL_ROUND, 0)

    if not get_bits(cnt, _BUSY, _BUSY):
        state.hasher = None
    elif state.hasher is None:
        log.debug("Starting SHA hasher")
        mode = get_bits(cnt, _MODE_LO, _MODE_HI)
        state.hasher = hashlib.new(_MODES.get(mode, "sha1"))

    dev.cnt.set_unchecked(set_bits(cnt, _BUSY, _BUSY, 0))


def _require_big_endian(dev: "ShaDevice") -> None:
    if not get_bits(dev.cnt.val, _BIG_ENDIAN, _BIG_ENDIAN):
        raise RegisterError("SHA engine only supports big-endian mode")


def _hash_read(dev: "ShaDevice", pos: int, size: int) -> bytes:
    data = dev.state.hash[pos:pos + size]
    log.debug("Reading %d bytes from SHA HASH at +0x%X: %s", size, pos, data.hex())
    _require_big_endian(dev)
    return data


def _hash_write(dev: "ShaDevice", pos: int, data: bytes) -> None:
    message = (
        f"Writes to the SHA HASH registers are not supported "
        f"({len(data)} bytes at +0x{pos:X})"
    )
    raise RegisterError(message)


def _fifo_read(dev: "ShaDevice", pos: int, size: int) -> bytes:
    log.warning("STUBBED: read from SHA FIFO register")
    return bytes(size)


def _fifo_write(dev: "ShaDevice", pos: int, data: bytes) -> None:
    log.debug("Writing %d bytes to SHA FIFO at +0x%X: %s", len(data), pos, data.hex())
    _require_big_endian(dev)
    if dev.state.hasher is not None:
        dev.state.hasher.update(data)


def _blk_cnt_read(dev: "ShaDevice") -> None:
    value = dev.blk_cnt.val
    log.warning("STUBBED: read from SHA BLK_CNT register: 0x%X", value)


def _blk_cnt_write(dev: "ShaDevice") -> None:
    log.warning("STUBBED: Write to SHA BLK_CNT register: 0x%X", dev.blk_cnt.val)


class ShaDevice(IoDevice):
    """The SHA engine's register file."""

    REGS = (
        RegSpec(0x000, "cnt", 4, write_effect=_cnt_update),
        RegSpec(0x004, "blk_cnt", 4, read_effect=_blk_cnt_read, write_effect=_blk_cnt_write),
    )
    RANGES = (
        RangeSpec(0x040, 0x20, read_effect=_hash_read, write_effect=_hash_write),
        RangeSpec(0x080, 0x40, read_effect=_fifo_read, write_effect=_fifo_write),
    )

    def __init__(self, state: ShaDeviceState) -> None:
        super().__init__()
        self.state = state