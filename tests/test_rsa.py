import pytest

from libllama.regs import RegisterError, get_bits
from libllama.rsa import RsaDevice, RsaDeviceState, byte_swap_inner, word_swap

LITTLE = 1 << 8
NORMAL = 1 << 9
BUSY = 1


def write_word(dev, offset, value):
    dev.write_reg(offset, value.to_bytes(4, "little"))


def load_exponent(dev, exponent):
    for i in range(0, 256, 4):
        dev.write_reg(0x200, exponent[i:i + 4])


def run(dev, modulus, exponent, message, flags):
    write_word(dev, 0x000, flags)
    load_exponent(dev, exponent)
    dev.write_reg(0x400, modulus)
    dev.write_reg(0x800, message)
    write_word(dev, 0x000, flags | BUSY)
    return dev.read_reg(0x800, 0x100)


def test_word_swap_moves_words():
    data = bytes(range(256))
    swapped = word_swap(data)
    assert swapped[:4] == data[-4:]
    assert swapped[-4:] == data[:4]
    assert word_swap(swapped) == data


def test_byte_swap_inner_reverses_each_word():
    data = bytes(range(256))
    swapped = byte_swap_inner(data)
    assert swapped[:4] == data[:4][::-1]
    assert byte_swap_inner(swapped) == data


def test_swaps_reject_partial_words():
    with pytest.raises(ValueError):
        word_swap(b"\x00\x01\x02")
    with pytest.raises(ValueError):
        byte_swap_inner(b"\x00")


def test_slot_len_default():
    dev = RsaDevice()
    assert dev.read_reg(0x104, 4) == (0x40).to_bytes(4, "little")
    assert dev.read_reg(0x134, 4) == (0x40).to_bytes(4, "little")


def test_keyslot_ready_after_full_exponent():
    dev = RsaDevice()
    assert get_bits(dev.read_reg(0x100, 4)[0], 0, 0) == 0
    load_exponent(dev, bytes(256))
    assert get_bits(dev.read_reg(0x100, 4)[0], 0, 0) == 1
    assert dev.state.slots[0].ready


def test_keyslot_selected_by_cnt():
    dev = RsaDevice()
    write_word(dev, 0x000, 2 << 4)
    load_exponent(dev, bytes(256))
    assert dev.state.slots[2].ready
    assert not dev.state.slots[0].ready
    assert get_bits(dev.read_reg(0x120, 4)[0], 0, 0) == 1


def test_clearing_key_set_resets_slot():
    dev = RsaDevice()
    load_exponent(dev, bytes(256))
    write_word(dev, 0x100, 0)
    assert not dev.state.slots[0].ready
    assert dev.state.slots[0].write_pos == 0
    with pytest.raises(RegisterError):
        write_word(dev, 0x000, BUSY)


def test_exp_fifo_read_raises():
    dev = RsaDevice()
    with pytest.raises(RegisterError):
        dev.read_reg(0x200, 4)


def test_exp_fifo_overrun_raises():
    dev = RsaDevice()
    load_exponent(dev, bytes(256))
    with pytest.raises(RegisterError):
        dev.write_reg(0x200, bytes(4))


def test_exp_fifo_requires_word_writes():
    dev = RsaDevice()
    with pytest.raises(RegisterError):
        dev.write_reg(0x200, bytes(8))


def test_protected_keyslot_rejects_exponent():
    dev = RsaDevice()
    write_word(dev, 0x100, 1 << 1)
    with pytest.raises(RegisterError):
        dev.write_reg(0x200, bytes(4))


def test_modulus_round_trip():
    dev = RsaDevice()
    modulus = bytes(range(256))
    dev.write_reg(0x400, modulus)
    assert dev.read_reg(0x400, 0x100) == modulus
    assert dev.read_reg(0x410, 8) == modulus[0x10:0x18]


def test_message_round_trip():
    dev = RsaDevice(RsaDeviceState())
    dev.write_reg(0x800, b"\x01\x02\x03\x04")
    assert dev.read_reg(0x800, 4) == b"\x01\x02\x03\x04"


def test_small_modexp():
    dev = RsaDevice()
    result = run(
        dev,
        modulus=(33).to_bytes(256, "big"),
        exponent=(3).to_bytes(256, "big"),
        message=(4).to_bytes(256, "big"),
        flags=LITTLE | NORMAL,
    )
    assert result == (31).to_bytes(256, "big")


def test_busy_cleared_after_operation():
    dev = RsaDevice()
    run(dev, (33).to_bytes(256, "big"), (3).to_bytes(256, "big"), (4).to_bytes(256, "big"),
        LITTLE | NORMAL)
    cnt = int.from_bytes(dev.read_reg(0x000, 4), "little")
    assert get_bits(cnt, 0, 0) == 0
    assert get_bits(cnt, 8, 9) == 3


def test_identity_exponent_with_swapped_layout():
    dev = RsaDevice()
    message = bytes(range(256))
    exponent = bytes(252) + b"\x01\x00\x00\x00"
    result = run(dev, b"\xff" * 256, exponent, message, flags=0)
    assert result == message


def test_even_modulus_gives_zero():
    dev = RsaDevice()
    result = run(
        dev,
        modulus=(2).to_bytes(256, "big"),
        exponent=(1).to_bytes(256, "big"),
        message=(1).to_bytes(256, "big"),
        flags=LITTLE | NORMAL,
    )
    assert result == bytes(256)


def test_zero_modulus_raises():
    dev = RsaDevice()
    with pytest.raises(RegisterError):
        run(dev, bytes(256), (1).to_bytes(256, "big"), (1).to_bytes(256, "big"),
            LITTLE | NORMAL)
    assert dev.state.slots[0].ready
    assert dev.read_reg(0x400, 0x100) == bytes(256)