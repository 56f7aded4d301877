"""The four ARM9 hardware timers, their prescalers and count-up chaining."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from functools import partial
from typing import Callable, Optional

from libllama.regs import IoDevice, RegSpec, get_bits

log = logging.getLogger(__name__)

NUM_TIMERS = 4
TIMER_IRQS = tuple(f"timer{index}" for index in range(NUM_TIMERS))
"""IRQ names passed to the IRQ client when a timer overflows."""

_PERIOD = 1 << 16
_U64_MAX = (1 << 64) - 1

# CNT bits
_PRESCALER_LO, _PRESCALER_HI = 0, 1
_COUNT_UP = 2
_IRQ_ENABLE = 6
_STARTED = 7

IrqClient = Callable[[str], None]


class Prescaler(enum.Enum):
    """Clock divider of a timer."""

    DIV1 = 0
    DIV64 = 1
    DIV256 = 2
    DIV1024 = 3

    @property
    def shift(self) -> int:
        return (0, 6, 8, 10)[self.value]

    @classmethod
    def from_bits(cls, val: int) -> "Prescaler":
        """Decode the two prescaler bits of a CNT register."""
        try:
            return cls(val)
        except ValueError:
            raise ValueError(f"invalid prescaler value {val}") from None


def scale(cycles: int, prescaler: Prescaler) -> int:
    """Convert CPU cycles to timer cycles."""
    return cycles >> prescaler.shift


def unscale(clock_ticks: int, prescaler: Prescaler) -> int:
    """Convert timer cycles to CPU cycles."""
    return clock_ticks << prescaler.shift


@dataclass(frozen=True)
class Cycles:
    """A cycle count: CPU cycles for a normal timer, ticks for a count-up timer."""

    value: int
    count_up: bool = False


class TimerState:
    """Running state of one timer."""

    def __init__(self) -> None:
        self.started = False
        self.val_cycles = Cycles(0)
        self.prescaler = Prescaler.DIV1

    def __repr__(self) -> str:
        return (
            f"TimerState(started={self.started}, val_cycles={self.val_cycles}, "
            f"prescaler={self.prescaler.name})"
        )

    def val(self) -> int:
        """Current timer value in timer cycles."""
        if self.val_cycles.count_up:
            return self.val_cycles.value
        return scale(self.val_cycles.value, self.prescaler)

    def incr_and_check_overflow(self, clock_diff: Cycles) -> bool:
        """Advance by ``clock_diff``; return True if the timer overflowed."""
        if clock_diff.count_up != self.val_cycles.count_up:
            raise ValueError("cycle kind does not match the timer's mode")
        till_overflow = self.clocks_till_overflow()
        current = self.val_cycles.value
        addend = clock_diff.value
        self.val_cycles = replace(self.val_cycles, value=current + addend)
        if self.val_cycles.count_up:
            return addend + current % _PERIOD >= _PERIOD
        return addend >= till_overflow

    def clocks_till_overflow(self) -> int:
        """CPU clocks until this timer overflows.

        Count-up timers only overflow when a lower timer does, so they
        report the largest 64-bit value.
        """
        if self.val_cycles.count_up:
            return _U64_MAX
        period = unscale(_PERIOD, self.prescaler)
        return period - self.val_cycles.value % period

    def set_val(self, val: int) -> None:
        """Load a 16-bit value written to the timer's VAL register."""
        val &= 0xFFFF
        if self.val_cycles.count_up:
            self.val_cycles = replace(self.val_cycles, value=val)
        else:
            self.val_cycles = replace(self.val_cycles, value=unscale(val, self.prescaler))


class TimerStates:
    """State of all four timers plus the global clock they are measured against."""

    def __init__(self) -> None:
        self.deadline: Optional[int] = None
        self.global_counter = 0
        # global_counter value when each timer was last brought up to date
        self.start_counters = [0] * NUM_TIMERS
        self.all = [TimerState() for _ in range(NUM_TIMERS)]

    def __repr__(self) -> str:
        return f"TimerStates(global_counter={self.global_counter}, deadline={self.deadline})"


def _update_deadlines(states: TimerStates) -> None:
    remaining = [t.clocks_till_overflow() for t in states.all if t.started]
    states.deadline = min(remaining) + states.global_counter if remaining else None


def _past_deadline(states: TimerStates) -> bool:
    return states.deadline is not None and states.global_counter > states.deadline


def handle_clock_update(timer_states: TimerStates, clock_diff: int, irq_tx: IrqClient) -> None:
    """Advance the clock by ``clock_diff`` cycles and raise IRQs for overflowed timers."""
    timer_states.global_counter += clock_diff
    if not _past_deadline(timer_states):
        return

    timers = timer_states.all
    if timers[0].val_cycles.count_up:
        raise RuntimeError("Don't know how to handle TIMER0 as a count-up timer!")

    prev_overflowed = False
    for index, timer in enumerate(timers):
        if not timer.started:
            continue
        if timer.val_cycles.count_up:
            cycles = Cycles(int(prev_overflowed), count_up=True)
        else:
            ctr = timer_states.global_counter
            cycles = Cycles(ctr - timer_states.start_counters[index])
            timer_states.start_counters[index] = ctr

        prev_overflowed = timer.incr_and_check_overflow(cycles)
        if prev_overflowed:
            irq_tx(TIMER_IRQS[index])

    _update_deadlines(timer_states)


def _val_write(dev: "TimerDevice", index: int) -> None:
    dev.states.all[index].set_val(dev.reg(f"val{index}").val)
    _update_deadlines(dev.states)


def _val_read(dev: "TimerDevice", index: int) -> None:
    dev.reg(f"val{index}").set_unchecked(dev.states.all[index].val() & 0xFFFF)


def _cnt_write(dev: "TimerDevice", index: int) -> None:
    cnt = dev.reg(f"cnt{index}").val
    states = dev.states
    timer = states.all[index]
    started = bool(get_bits(cnt, _STARTED, _STARTED))

    if not timer.started and started:
        # Baseline against which elapsed cycles are measured later.
        states.start_counters[index] = states.global_counter
    timer.started = started
    timer.prescaler = Prescaler.from_bits(get_bits(cnt, _PRESCALER_LO, _PRESCALER_HI))
    timer.val_cycles = Cycles(timer.val(), count_up=bool(get_bits(cnt, _COUNT_UP, _COUNT_UP)))
    log.debug("Setting TIMER CNT%d: %r", index, timer)

    _update_deadlines(states)


def _timer_regs(index: int) -> tuple[RegSpec, RegSpec]:
    base = 4 * index
    return (
        RegSpec(
            base,
            f"val{index}",
            2,
            read_effect=partial(_val_read, index=index),
            write_effect=partial(_val_write, index=index),
        ),
        RegSpec(base + 2, f"cnt{index}", 2, write_effect=partial(_cnt_write, index=index)),
    )


class TimerDevice(IoDevice):
    """The timer register file."""

    REGS = tuple(spec for index in range(NUM_TIMERS) for spec in _timer_regs(index))

    def __init__(self, states: Optional[TimerStates] = None) -> None:
        super().__init__()
        self.states = states if states is not None else TimerStates()