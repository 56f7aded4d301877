"""Inter-processor FIFO and sync registers linking the ARM9 and ARM11."""

from __future__ import annotations

import enum
import logging
import queue
from dataclasses import dataclass, field
from typing import Any, Callable

from libllama.regs import IoDevice, RegisterError, RegSpec, get_bits, set_bits

log = logging.getLogger(__name__)

PXI_SYNC_IRQ = "pxi_sync"
"""Name passed to an IRQ client when a PXI sync interrupt is raised."""

_FIFO_DEPTH = 4

IrqClient = Callable[[str], None]

# PXI_CNT bits
_SEND_EMPTY = 0
_SEND_FULL = 1
_FLUSH_SEND = 3
_RECV_EMPTY = 8
_RECV_FULL = 9
_CANNOT_RW = 14

# PXI_SYNC control bits
_TRIGGER_IRQ11 = 5
_TRIGGER_IRQ9 = 6
_IRQ_ENABLED = 7


@dataclass
class _Cell:
    """A mutable value shared by both ends of a channel."""

    value: Any


class PxiEnd(enum.Enum):
    """Which CPU an end of the PXI channel belongs to."""

    ARM9 = "arm9"
    ARM11 = "arm11"


@dataclass(eq=False)
class PxiShared:
    """One end of a PXI channel: its FIFOs, sync bytes and IRQ flags."""

    end: PxiEnd
    tx: queue.Queue
    rx: queue.Queue
    sync_tx: _Cell
    sync_rx: _Cell
    irq_enabled: _Cell
    other_irq_enabled: _Cell
    irq_client: IrqClient = field(repr=False)

    @property
    def tx_count(self) -> int:
        return self.tx.qsize()

    @property
    def rx_count(self) -> int:
        return self.rx.qsize()


def make_channel(irq9: IrqClient, irq11: IrqClient) -> tuple[PxiShared, PxiShared]:
    """Create the connected (ARM9 end, ARM11 end) pair.

    ``irq9`` raises interrupts on the ARM9 and is held by the ARM11 end;
    ``irq11`` is held by the ARM9 end.
    """
    to_arm9: queue.Queue = queue.Queue(maxsize=_FIFO_DEPTH)
    to_arm11: queue.Queue = queue.Queue(maxsize=_FIFO_DEPTH)
    sync_to_arm9 = _Cell(0)
    sync_to_arm11 = _Cell(0)
    arm11_irq_enabled = _Cell(False)
    arm9_irq_enabled = _Cell(False)

    pxi11 = PxiShared(
        end=PxiEnd.ARM11,
        tx=to_arm9,
        rx=to_arm11,
        sync_tx=sync_to_arm9,
        sync_rx=sync_to_arm11,
        irq_enabled=arm11_irq_enabled,
        other_irq_enabled=arm9_irq_enabled,
        irq_client=irq9,
    )
    pxi9 = PxiShared(
        end=PxiEnd.ARM9,
        tx=to_arm11,
        rx=to_arm9,
        sync_tx=sync_to_arm11,
        sync_rx=sync_to_arm9,
        irq_enabled=arm9_irq_enabled,
        other_irq_enabled=arm11_irq_enabled,
        irq_client=irq11,
    )
    return pxi9, pxi11


def _sync_read(dev: "PxiDevice") -> None:
    byte = dev.shared.sync_rx.value & 0xFF
    log.debug("Read %X from PXI_SYNC", byte)
    dev.sync_recv.set_unchecked(byte)


def _sync_write(dev: "PxiDevice") -> None:
    byte = dev.sync_send.val
    log.debug("Wrote %X to PXI_SYNC", byte)
    dev.shared.sync_tx.value = byte


def _sync_unk_write(dev: "PxiDevice") -> None:
    byte = dev.sync_unk.val
    log.debug("STUBBED: Write 0x%X to PXI unknown sync ctrl register!", byte)


def _sync_ctrl_write(dev: "PxiDevice") -> None:
    ctrl = dev.sync_ctrl.val
    state = dev.shared

    if get_bits(ctrl, _TRIGGER_IRQ9, _TRIGGER_IRQ9):
        if state.end is not PxiEnd.ARM11:
            raise RegisterError("ARM9 end of PXI cannot trigger an ARM9 sync IRQ")
        if state.other_irq_enabled.value:
            log.info("Triggering PXI sync on ARM9")
            state.irq_client(PXI_SYNC_IRQ)
    if get_bits(ctrl, _TRIGGER_IRQ11, _TRIGGER_IRQ11):
        if state.end is not PxiEnd.ARM9:
            raise RegisterError("ARM11 end of PXI cannot trigger an ARM11 sync IRQ")
        if state.other_irq_enabled.value:
            log.info("Triggering PXI sync on ARM11")
            state.irq_client(PXI_SYNC_IRQ)

    ctrl = set_bits(ctrl, _TRIGGER_IRQ9, _TRIGGER_IRQ9, 0)
    ctrl = set_bits(ctrl, _TRIGGER_IRQ11, _TRIGGER_IRQ11, 0)
    dev.sync_ctrl.set_unchecked(ctrl)
    state.irq_enabled.value = bool(get_bits(ctrl, _IRQ_ENABLED, _IRQ_ENABLED))


def _cnt_read(dev: "PxiDevice") -> None:
    tx_count = dev.shared.tx_count
    rx_count = dev.shared.rx_count
    val = dev.cnt.val
    val = set_bits(val, _SEND_EMPTY, _SEND_EMPTY, int(tx_count == 0))
    val = set_bits(val, _SEND_FULL, _SEND_FULL, int(tx_count == _FIFO_DEPTH))
    val = set_bits(val, _RECV_EMPTY, _RECV_EMPTY, int(rx_count == 0))
    val = set_bits(val, _RECV_FULL, _RECV_FULL, int(rx_count == _FIFO_DEPTH))
    dev.cnt.set_unchecked(val)


def _cnt_write(dev: "PxiDevice") -> None:
    val = dev.cnt.val
    if get_bits(val, _FLUSH_SEND, _FLUSH_SEND):
        log.warning("STUBBED: cannot flush PXI tx channel!")
        val = set_bits(val, _FLUSH_SEND, _FLUSH_SEND, 0)
    if get_bits(val, _CANNOT_RW, _CANNOT_RW):
        val = set_bits(val, _CANNOT_RW, _CANNOT_RW, 0)
    dev.cnt.set_unchecked(val)
    log.warning("STUBBED: Write to PXI_CNT")


def _send_write(dev: "PxiDevice") -> None:
    try:
        dev.shared.tx.put_nowait(dev.send.val)
    except queue.Full:
        raise OverflowError("Attempted to send PXI word while FIFO full") from None


def _recv_read(dev: "PxiDevice") -> None:
    try:
        word = dev.shared.rx.get_nowait()
    except queue.Empty:
        log.debug("Attempted to receive PXI word while FIFO empty")
        return
    dev.recv.set_unchecked(word)


class PxiDevice(IoDevice):
    """The PXI register file seen by one CPU."""

    REGS = (
        RegSpec(0x000, "sync_recv", 1, read_effect=_sync_read),
        RegSpec(0x001, "sync_send", 1, write_effect=_sync_write),
        RegSpec(0x002, "sync_unk", 1, write_effect=_sync_unk_write),
        RegSpec(0x003, "sync_ctrl", 1, write_effect=_sync_ctrl_write),
        RegSpec(
            0x004,
            "cnt",
            2,
            write_bits=0b11000100_00001100,
            read_effect=_cnt_read,
            write_effect=_cnt_write,
        ),
        RegSpec(0x006, "cnt_ext", 2),
        RegSpec(0x008, "send", 4, write_effect=_send_write),
        RegSpec(0x00C, "recv", 4, read_effect=_recv_read),
    )

    def __init__(self, shared: PxiShared) -> None:
        super().__init__()
        self.shared = shared