"""The RSA modular-exponentiation engine and its four keyslots."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial

from libllama.regs import IoDevice, RangeSpec, RegisterError, RegSpec, get_bits, set_bits

log = logging.getLogger(__name__)

_BUF_SIZE = 0x100
_NUM_SLOTS = 4

# CNT bits
_BUSY = 0
_KEYSLOT_LO, _KEYSLOT_HI = 4, 5
_LITTLE_ENDIAN = 8
_NORMAL_ORDER = 9

# Keyslot CNT bits
_KEY_SET = 0
_KEY_PROT = 1


@dataclass
class RsaKeyslot:
    """Exponent, modulus and load progress of one keyslot."""

    write_pos: int = 0
    buf: bytearray = field(default_factory=lambda: bytearray(_BUF_SIZE))
    modulus: bytearray = field(default_factory=lambda: bytearray(_BUF_SIZE))
    ready: bool = False


@dataclass
class RsaDeviceState:
    """The keyslots and the message buffer of the RSA engine."""

    slots: list[RsaKeyslot] = field(
        default_factory=lambda: [RsaKeyslot() for _ in range(_NUM_SLOTS)]
    )
    message: bytearray = field(default_factory=lambda: bytearray(_BUF_SIZE))


def _words(buf: bytes) -> list[bytes]:
    data = bytes(buf)
    if len(data) % 4:
        raise ValueError("buffer length must be a multiple of 4")
    return [data[i:i + 4] for i in range(0, len(data), 4)]


def word_swap(buf: bytes) -> bytes:
    """Reverse the order of the 4-byte words of ``buf``."""
    return b"".join(reversed(_words(buf)))


def byte_swap_inner(buf: bytes) -> bytes:
    """Reverse the bytes inside each 4-byte word of ``buf``."""
    return b"".join(word[::-1] for word in _words(buf))


def _keyslot(dev: "RsaDevice") -> int:
    return get_bits(dev.cnt.val, _KEYSLOT_LO, _KEYSLOT_HI)


def _slot_cnt_read(dev: "RsaDevice", keyslot: int) -> None:
    reg = dev.reg(f"slot{keyslot}_cnt")
    ready = dev.state.slots[keyslot].ready
    log.debug("Reading from RSA keyslot %d CNT; ready == %s", keyslot, ready)
    reg.set_unchecked(set_bits(reg.val, _KEY_SET, _KEY_SET, int(ready)))


def _slot_cnt_update(dev: "RsaDevice", keyslot: int) -> None:
    slot_cnt = dev.reg(f"slot{keyslot}_cnt").val
    slot = dev.state.slots[keyslot]
    if slot.ready and not get_bits(slot_cnt, _KEY_SET, _KEY_SET):
        slot.ready = False
        slot.write_pos = 0
        log.debug("Reset RSA keyslot %d!", keyslot)


def _cnt_update(dev: "RsaDevice") -> None:
    cnt = dev.cnt.val
    log.debug("Wrote 0x%08X to RSA CNT register!", cnt)
    if not get_bits(cnt, _BUSY, _BUSY):
        return

    keyslot = get_bits(cnt, _KEYSLOT_LO, _KEYSLOT_HI)
    slot = dev.state.slots[keyslot]
    if not slot.ready:
        raise RegisterError(f"RSA keyslot {keyslot} has no exponent loaded")

    log.debug("Performing RSA arithmetic!")
    base = bytes(dev.state.message)
    exponent = bytes(slot.buf)
    modulus = bytes(slot.modulus)

    little_endian = get_bits(cnt, _LITTLE_ENDIAN, _LITTLE_ENDIAN)
    normal_order = get_bits(cnt, _NORMAL_ORDER, _NORMAL_ORDER)
    if not little_endian:
        base, exponent, modulus = (byte_swap_inner(b) for b in (base, exponent, modulus))
    if not normal_order:
        modulus = word_swap(modulus)
        base = word_swap(base)

    base_num = int.from_bytes(base, "big")
    exp_num = int.from_bytes(exponent, "big")
    mod_num = int.from_bytes(modulus, "big")
    if mod_num == 0:
        raise RegisterError(f"RSA keyslot {keyslot} has a zero modulus")
    # The hardware outputs 0 for even moduli.
    if not mod_num & 1:
        base_num = 0

    result = pow(base_num, exp_num, mod_num).to_bytes(_BUF_SIZE, "big")
    if not little_endian:
        result = byte_swap_inner(result)
    if not normal_order:
        result = word_swap(result)
    dev.state.message[:] = result

    dev.cnt.set_unchecked(set_bits(cnt, _BUSY, _BUSY, 0))


def _exp_fifo_read(dev: "RsaDevice", pos: int, size: int) -> bytes:
    keyslot = _keyslot(dev)
    message = (
        f"Attempted read of {size} bytes from RSA EXP_FIFO "
        f"(keyslot {keyslot}, +0x{pos:X})!"
    )
    raise RegisterError(message)


def _exp_write(dev: "RsaDevice", pos: int, data: bytes) -> None:
    keyslot = _keyslot(dev)
    slot_cnt = dev.reg(f"slot{keyslot}_cnt").val
    if get_bits(slot_cnt, _KEY_PROT, _KEY_PROT):
        raise RegisterError(f"RSA keyslot {keyslot} is write-protected")

    slot = dev.state.slots[keyslot]
    if slot.write_pos == 0:
        slot.buf = bytearray(_BUF_SIZE)
    if slot.write_pos >= _BUF_SIZE:
        raise RegisterError(f"RSA keyslot {keyslot} exponent FIFO overrun")
    if len(data) != 4:
        raise RegisterError("RSA exponent FIFO takes 4-byte writes")

    slot.buf[slot.write_pos:slot.write_pos + 4] = data
    log.debug("Writing bytes %s to RSA exponent FIFO!", data.hex())
    slot.write_pos += 4
    if slot.write_pos == _BUF_SIZE:
        log.debug("Committing RSA keyslot %d exponent", keyslot)
        slot.ready = True


def _mod_read(dev: "RsaDevice", pos: int, size: int) -> bytes:
    keyslot = _keyslot(dev)
    log.debug("Reading %d bytes from RSA keyslot %d MOD at +0x%X", size, keyslot, pos)
    return bytes(dev.state.slots[keyslot].modulus[pos:pos + size])


def _mod_write(dev: "RsaDevice", pos: int, data: bytes) -> None:
    keyslot = _keyslot(dev)
    log.debug("Writing %d bytes to RSA keyslot %d MOD at +0x%X", len(data), keyslot, pos)
    dev.state.slots[keyslot].modulus[pos:pos + len(data)] = data


def _txt_read(dev: "RsaDevice", pos: int, size: int) -> bytes:
    log.debug("Reading %d bytes from RSA TXT at +0x%X", size, pos)
    return bytes(dev.state.message[pos:pos + size])


def _txt_write(dev: "RsaDevice", pos: int, data: bytes) -> None:
    log.debug("Writing %d bytes to RSA TXT at +0x%X", len(data), pos)
    dev.state.message[pos:pos + len(data)] = data


def _slot_regs(keyslot: int) -> tuple[RegSpec, RegSpec]:
    base = 0x100 + 0x10 * keyslot
    return (
        RegSpec(
            base,
            f"slot{keyslot}_cnt",
            4,
            read_effect=partial(_slot_cnt_read, keyslot=keyslot),
            write_effect=partial(_slot_cnt_update, keyslot=keyslot),
        ),
        RegSpec(base + 4, f"slot{keyslot}_len", 4, default=0x40),
    )


_REGS = (
    RegSpec(0x000, "cnt", 4, write_effect=_cnt_update),
    RegSpec(0x0F0, "unk", 4),
    *(spec for keyslot in range(_NUM_SLOTS) for spec in _slot_regs(keyslot)),
)


class RsaDevice(IoDevice):
    """The RSA engine's register file."""

    REGS = _REGS
    RANGES = (
        RangeSpec(0x200, _BUF_SIZE, read_effect=_exp_fifo_read, write_effect=_exp_write),
        RangeSpec(0x400, _BUF_SIZE, read_effect=_mod_read, write_effect=_mod_write),
        RangeSpec(0x800, _BUF_SIZE, read_effect=_txt_read, write_effect=_txt_write),
    )

    def __init__(self, state: RsaDeviceState | None = None) -> None:
        super().__init__()
        self.state = state if state is not None else RsaDeviceState()