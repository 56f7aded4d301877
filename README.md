# libllama

Building blocks for emulating the 3DS's ARM9/ARM11 hardware in Python:
a guest address space, memory-mapped register devices, and the PXI, RSA,
SHA and timer peripherals built on them. It has no dependencies beyond
the standard library.

## What is inside

- `libllama.fifo.Fifo`: a bounded FIFO. `push` returns `False` when full,
  `pop` returns `None` when empty, `drain(count)` removes up to `count`
  items and returns them as a list, `clone_extend(items)` adds as many as
  fit and returns how many it added.
- `libllama.bcast`: `broadcast(initial)` returns a connected
  `Broadcaster` (`update(val)`) and `Audience` (`val()`) sharing one
  lock-protected value.
- `libllama.regs`: `IoReg`, a fixed-size register whose `set` only changes
  the bits in its `write_bits` mask; `get_bits`/`set_bits` for inclusive bit
  fields; and `IoDevice`, a base class for register files declared through
  the `REGS` (`RegSpec`) and `RANGES` (`RangeSpec`) class attributes.
  `read_reg(offset, size)` and `write_reg(offset, data)` run the declared
  read/write effects; accesses wider than a register continue into the next
  one. Unhandled offsets raise `RegisterError`.
- `libllama.mem`: `MemController` maps `UniqueMemoryBlock`,
  `SharedMemoryBlock` (locked in 1 KiB nodes) and `IoMemoryBlock` (a window
  onto an `IoDevice`) at base addresses. `read`/`write` move little-endian
  integers, `read_buf`/`write_buf` move bytes, and `debug_read_buf` refuses
  IO blocks that were not marked debuggable. Unmapped or out-of-bounds
  accesses raise `MemoryAccessError`.
- `libllama.msgs`: `MsgGraph(graph_spec, ident)` builds named `Client`s from
  `(name, sent kinds, received kinds)` entries; `Client.send` delivers to
  every receiver of the message's kind and raises `ValueError` for kinds the
  client may not send. `make_idle_task` runs a handler over a client's
  messages on a daemon thread until the handler returns a false value.
- `libllama.pxi`: `make_channel(irq9, irq11)` returns the two connected
  `PxiShared` ends; `PxiDevice` exposes the sync bytes, control register and
  the 4-word send/receive FIFOs.
- `libllama.rsa`: `RsaDevice` with four keyslots, an exponent FIFO, modulus
  and message buffers; writing the busy bit to `cnt` performs the modular
  exponentiation. `word_swap` and `byte_swap_inner` reorder 4-byte words.
- `libllama.sha`: `ShaDevice` hashing FIFO writes with SHA-256, SHA-224 or
  SHA-1 (via `hashlib`) and exposing the digest in its hash range.
- `libllama.timer`: `TimerDevice` with four 16-bit timers, prescalers and
  count-up chaining; `handle_clock_update(states, clock_diff, irq_tx)`
  advances the clock and calls `irq_tx("timer0")` … `irq_tx("timer3")` on
  overflow.

## Install

    pip install .

## Example

Memory:

    from libllama.mem import MemController, UniqueMemoryBlock

    mem = MemController()
    mem.map_region(0x08000000, UniqueMemoryBlock(1024))
    mem.write_buf(0x08000000, b"\x01\x02\x03\x04")
    assert mem.read(0x08000000, 4) == 0x04030201

A register device mapped into memory:

    from libllama.mem import IoMemoryBlock
    from libllama.regs import IoDevice, RegSpec

    class Scratch(IoDevice):
        REGS = (
            RegSpec(0x0, "data", 2),
            RegSpec(0x2, "ro", 2, default=0x1234, write_bits=0),
        )

    dev = Scratch()
    mem.map_region(0x10000000, IoMemoryBlock(dev, 4))
    mem.write(0x10000000, 0xFFFFFFFF, 4)
    assert dev.data.val == 0xFFFF
    assert dev.ro.val == 0x1234

Message routing:

    from libllama.msgs import MsgGraph

    graph = MsgGraph([("ui", ["quit"], []), ("core", [], ["quit"])],
                     ident=lambda msg: msg)
    ui, core = graph.client("ui"), graph.client("core")
    ui.send("quit")
    assert core.try_recv() == "quit"

## What it does not do

The package provides devices and plumbing only. It has no CPU
interpreter, no loader for boot images or game files, no framebuffer
output and no command-line program; a caller wires the pieces together
and drives them.

## Tests

    pip install .[test]
    pytest