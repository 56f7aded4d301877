import pytest

from libllama.pxi import PXI_SYNC_IRQ, PxiDevice, PxiEnd, make_channel
from libllama.regs import RegisterError, get_bits


@pytest.fixture
def channel():
    irq9, irq11 = [], []
    pxi9, pxi11 = make_channel(irq9.append, irq11.append)
    return PxiDevice(pxi9), PxiDevice(pxi11), irq9, irq11


def send_word(dev, value):
    dev.write_reg(0x008, value.to_bytes(4, "little"))


def recv_word(dev):
    return int.from_bytes(dev.read_reg(0x00C, 4), "little")


def read_cnt(dev):
    return int.from_bytes(dev.read_reg(0x004, 2), "little")


def test_channel_ends():
    pxi9, pxi11 = make_channel(lambda irq: None, lambda irq: None)
    assert pxi9.end is PxiEnd.ARM9
    assert pxi11.end is PxiEnd.ARM11
    assert pxi9.tx is pxi11.rx
    assert pxi11.tx is pxi9.rx


def test_word_round_trip_both_directions(channel):
    dev9, dev11, _, _ = channel
    send_word(dev9, 0xDEADBEEF)
    assert recv_word(dev11) == 0xDEADBEEF
    send_word(dev11, 0x12345678)
    assert recv_word(dev9) == 0x12345678


def test_words_arrive_in_order(channel):
    dev9, dev11, _, _ = channel
    words = [1, 2, 3, 4]
    for word in words:
        send_word(dev9, word)
    assert [recv_word(dev11) for _ in words] == words


def test_recv_on_empty_keeps_last_value(channel):
    dev9, dev11, _, _ = channel
    send_word(dev9, 0xCAFE)
    assert recv_word(dev11) == 0xCAFE
    assert recv_word(dev11) == 0xCAFE


def test_send_when_full_raises(channel):
    dev9, dev11, _, _ = channel
    for word in range(4):
        send_word(dev9, word)
    with pytest.raises(OverflowError):
        send_word(dev9, 99)
    assert [recv_word(dev11) for _ in range(4)] == [0, 1, 2, 3]


def test_cnt_reports_empty_fifos(channel):
    dev9, _, _, _ = channel
    cnt = read_cnt(dev9)
    assert get_bits(cnt, 0, 0) == 1
    assert get_bits(cnt, 1, 1) == 0
    assert get_bits(cnt, 8, 8) == 1
    assert get_bits(cnt, 9, 9) == 0


def test_cnt_reports_full_fifos(channel):
    dev9, dev11, _, _ = channel
    for word in range(4):
        send_word(dev9, word)
    sender = read_cnt(dev9)
    receiver = read_cnt(dev11)
    assert get_bits(sender, 0, 0) == 0
    assert get_bits(sender, 1, 1) == 1
    assert get_bits(receiver, 8, 8) == 0
    assert get_bits(receiver, 9, 9) == 1


def test_cnt_write_clears_flush_and_error_bits(channel):
    dev9, _, _, _ = channel
    dev9.write_reg(0x004, ((1 << 3) | (1 << 14)).to_bytes(2, "little"))
    assert get_bits(dev9.cnt.val, 3, 3) == 0
    assert get_bits(dev9.cnt.val, 14, 14) == 0


def test_sync_byte_crosses_over(channel):
    dev9, dev11, _, _ = channel
    dev9.write_reg(0x001, bytes([0x5A]))
    assert dev11.read_reg(0x000, 1) == bytes([0x5A])
    dev11.write_reg(0x001, bytes([0x17]))
    assert dev9.read_reg(0x000, 1) == bytes([0x17])


def test_sync_irq_to_arm9_when_enabled(channel):
    dev9, dev11, irq9, irq11 = channel
    dev9.write_reg(0x003, bytes([1 << 7]))
    dev11.write_reg(0x003, bytes([1 << 6]))
    assert irq9 == [PXI_SYNC_IRQ]
    assert irq11 == []


def test_sync_irq_to_arm11_when_enabled(channel):
    dev9, dev11, irq9, irq11 = channel
    dev11.write_reg(0x003, bytes([1 << 7]))
    dev9.write_reg(0x003, bytes([1 << 5]))
    assert irq11 == [PXI_SYNC_IRQ]
    assert irq9 == []


def test_sync_irq_suppressed_when_disabled(channel):
    dev9, dev11, irq9, _ = channel
    dev11.write_reg(0x003, bytes([1 << 6]))
    assert irq9 == []


def test_sync_ctrl_trigger_bits_cleared(channel):
    dev9, dev11, _, _ = channel
    dev11.write_reg(0x003, bytes([(1 << 6) | (1 << 7)]))
    ctrl = dev11.read_reg(0x003, 1)[0]
    assert get_bits(ctrl, 5, 6) == 0
    assert get_bits(ctrl, 7, 7) == 1
    assert dev11.shared.irq_enabled.value is True


def test_sync_irq_wrong_direction_raises(channel):
    dev9, _, _, _ = channel
    with pytest.raises(RegisterError):
        dev9.write_reg(0x003, bytes([1 << 6]))