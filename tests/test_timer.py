import pytest

from libllama.timer import (
    Cycles,
    Prescaler,
    TimerDevice,
    TimerState,
    TimerStates,
    handle_clock_update,
    scale,
    unscale,
)


def _u16(value):
    return value.to_bytes(2, "little")


STARTED = 1 << 7
COUNT_UP = 1 << 2


@pytest.mark.parametrize("prescaler", list(Prescaler))
@pytest.mark.parametrize("ticks", [0, 1, 0xFFFF, 12345])
def test_scale_unscale_round_trip(prescaler, ticks):
    assert scale(unscale(ticks, prescaler), prescaler) == ticks


def test_unscale_matches_divider():
    assert unscale(1, Prescaler.DIV1) == 1
    assert unscale(1, Prescaler.DIV64) == 64
    assert unscale(1, Prescaler.DIV1024) == 1024


def test_prescaler_from_bits():
    assert Prescaler.from_bits(3) is Prescaler.DIV1024
    assert Prescaler.from_bits(0) is Prescaler.DIV1
    with pytest.raises(ValueError):
        Prescaler.from_bits(4)


def test_fresh_timer_full_period():
    timer = TimerState()
    assert timer.clocks_till_overflow() == 1 << 16
    assert timer.val() == 0


@pytest.mark.parametrize("prescaler", list(Prescaler))
def test_set_val_round_trips(prescaler):
    timer = TimerState()
    timer.prescaler = prescaler
    timer.set_val(0x1234)
    assert timer.val() == 0x1234
    assert timer.clocks_till_overflow() == unscale((1 << 16) - 0x1234, prescaler)


def test_count_up_overflow():
    timer = TimerState()
    timer.val_cycles = Cycles(0xFFFF, count_up=True)
    assert timer.clocks_till_overflow() == (1 << 64) - 1
    assert timer.incr_and_check_overflow(Cycles(1, count_up=True)) is True
    assert timer.incr_and_check_overflow(Cycles(0, count_up=True)) is False


def test_mismatched_cycle_kind_rejected():
    timer = TimerState()
    with pytest.raises(ValueError):
        timer.incr_and_check_overflow(Cycles(1, count_up=True))


def test_no_started_timers_has_no_deadline():
    states = TimerStates()
    irqs = []
    handle_clock_update(states, 1 << 20, irqs.append)
    assert states.global_counter == 1 << 20
    assert states.deadline is None
    assert irqs == []


def test_overflow_raises_irq():
    dev = TimerDevice()
    dev.write_reg(0x0, _u16(0xFFFF))
    dev.write_reg(0x2, _u16(STARTED))
    assert dev.states.deadline == 1
    irqs = []
    handle_clock_update(dev.states, 2, irqs.append)
    assert irqs == ["timer0"]


def test_before_deadline_nothing_happens():
    dev = TimerDevice()
    dev.write_reg(0x0, _u16(0xFF00))
    dev.write_reg(0x2, _u16(STARTED))
    irqs = []
    handle_clock_update(dev.states, 0x10, irqs.append)
    assert irqs == []
    assert dev.read_reg(0x0, 2) == _u16(0xFF00)


def test_value_wraps_after_overflow():
    dev = TimerDevice()
    start, step = 0xFFF0, 0x20
    dev.write_reg(0x0, _u16(start))
    dev.write_reg(0x2, _u16(STARTED))
    irqs = []
    handle_clock_update(dev.states, step, irqs.append)
    assert irqs == ["timer0"]
    assert dev.read_reg(0x0, 2) == _u16((start + step) & 0xFFFF)


def test_count_up_cascade():
    dev = TimerDevice()
    dev.write_reg(0x0, _u16(0xFFFF))
    dev.write_reg(0x2, _u16(STARTED))
    dev.write_reg(0x4, _u16(0xFFFF))
    dev.write_reg(0x6, _u16(STARTED | COUNT_UP))
    assert dev.states.all[1].val_cycles.count_up
    irqs = []
    handle_clock_update(dev.states, 2, irqs.append)
    assert irqs == ["timer0", "timer1"]


def test_timer0_count_up_rejected():
    dev = TimerDevice()
    dev.write_reg(0x0, _u16(0xFFFF))
    dev.write_reg(0x2, _u16(STARTED | COUNT_UP))
    dev.write_reg(0x4, _u16(0xFFFF))
    dev.write_reg(0x6, _u16(STARTED))
    with pytest.raises(RuntimeError):
        handle_clock_update(dev.states, 2, lambda name: None)


def test_shared_states_between_devices():
    states = TimerStates()
    dev = TimerDevice(states)
    dev.write_reg(0x8, _u16(0x4321))
    assert states.all[2].val() == 0x4321
    assert dev.read_reg(0x8, 2) == _u16(0x4321)


def test_stopping_clears_deadline():
    dev = TimerDevice()
    dev.write_reg(0x2, _u16(STARTED))
    assert dev.states.deadline is not None
    dev.write_reg(0x2, _u16(0))
    assert dev.states.deadline is None
    assert dev.states.all[0].started is False