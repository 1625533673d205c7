import struct
import pytest

from macpatch.traps import (
  DecoderState, TrapDecoder, MalformedTableError, ROM_BASE, UNIMPL,
  decode, step, get_table_start, idx_to_trap, trap_to_idx)

def table_rom(table, table_start=0x40):
  # Minimal ROM with the table pointer at 0x22
  rom = bytearray(table_start)
  rom[0x22:0x26] = struct.pack(">I", table_start)
  return bytes(rom) + bytes(table)

def test_absolute_then_short_delta():
  tbl = bytes.fromhex("FF 00 00 01 00 81 00 00")
  assert list(decode(tbl, 0, base=0x400000)) == [0x400100, 0x400102]

def test_table_start_from_header():
  rom = table_rom(bytes.fromhex("FF 00 00 01 00 81 00 00"), 0x80)
  assert get_table_start(rom) == 0x80
  assert list(TrapDecoder(rom)) == [ROM_BASE + 0x100, ROM_BASE + 0x102]

def test_unimplemented_keeps_pointer():
  tbl = bytes.fromhex("FF 00 00 01 00 80 81 00 00")
  assert list(decode(tbl, 0)) == [ROM_BASE + 0x100, UNIMPL, ROM_BASE + 0x102]

def test_unimplemented_first_entry():
  assert list(decode(bytes.fromhex("80 80 00 00"), 0)) == [UNIMPL, UNIMPL]

def test_long_forward_delta():
  tbl = bytes.fromhex("01 00 00 00")
  assert list(decode(tbl, 0)) == [ROM_BASE + 0x200]

def test_long_negative_delta():
  # 0x7FFF is a delta of -1 word
  tbl = bytes.fromhex("FF 00 01 00 00 7F FF 00 00")
  assert list(decode(tbl, 0)) == [ROM_BASE + 0x10000, ROM_BASE + 0xFFFE]

def test_long_negative_delta_biased():
  # 0x4002: 0x8004 bytes forward, minus 0x10000
  tbl = bytes.fromhex("FF 00 01 00 00 40 02 00 00")
  assert list(decode(tbl, 0)) == [ROM_BASE + 0x10000, ROM_BASE + 0x8004]

def test_short_delta_max():
  assert list(decode(bytes.fromhex("FE 00 00"), 0)) == [ROM_BASE + 0x7E * 2]

def test_step_is_pure():
  st = DecoderState(0, ROM_BASE)
  assert step(b"\x81", st) == (DecoderState(1, ROM_BASE + 2), ROM_BASE + 2)
  assert step(b"\x80", st) == (DecoderState(1, ROM_BASE), UNIMPL)
  assert step(b"\x00\x00", st) == (DecoderState(2, ROM_BASE), None)
  assert st == DecoderState(0, ROM_BASE)

def test_step_custom_base_and_unimpl():
  st = DecoderState(0, 0x1000)
  assert step(b"\xff\x00\x00\x00\x10", st, base=0x1000) == (DecoderState(5, 0x1010), 0x1010)
  assert step(b"\x80", st, unimpl=0x1234) == (DecoderState(1, 0x1000), 0x1234)

def test_terminates_and_stays_exhausted():
  tbl = bytes.fromhex("81 82 00 00 81 81")
  dec = decode(tbl, 0)
  assert not dec.exhausted
  assert list(dec) == [ROM_BASE + 2, ROM_BASE + 6]
  assert dec.exhausted
  assert dec.exhausted
  assert dec.cursor == 4
  assert dec.pointer == ROM_BASE + 6
  with pytest.raises(StopIteration):
    next(dec)
  assert list(dec) == []

def test_lazy_decoding():
  # Garbage after the first entry is not touched until requested
  dec = decode(bytes.fromhex("81 FF 00"), 0)
  assert next(dec) == ROM_BASE + 2
  assert dec.cursor == 1
  with pytest.raises(MalformedTableError):
    next(dec)

def test_truncated_absolute_entry():
  with pytest.raises(MalformedTableError):
    list(decode(bytes.fromhex("FF 00 00"), 0))

def test_missing_terminator():
  with pytest.raises(MalformedTableError):
    list(decode(bytes.fromhex("81 81"), 0))

def test_truncated_long_entry():
  with pytest.raises(MalformedTableError):
    list(decode(bytes.fromhex("81 01"), 0))

def test_table_start_out_of_bounds():
  with pytest.raises(MalformedTableError):
    list(decode(b"\x81\x00\x00", 10))
  with pytest.raises(MalformedTableError):
    get_table_start(b"\x00" * 0x10)

def test_pointer_underflow():
  with pytest.raises(MalformedTableError):
    list(decode(bytes.fromhex("7F FF 00 00"), 0, base=0))

def test_trap_index_mapping():
  assert idx_to_trap(0) == 0xA800
  assert idx_to_trap(0x1A0) == 0xA9A0
  assert idx_to_trap(0x1FF) == 0xA9FF
  assert idx_to_trap(0x200) == 0xA000
  assert idx_to_trap(0x22F) == 0xA02F
  assert trap_to_idx(0xA9A0) == 0x1A0
  assert trap_to_idx(0xA02F) == 0x22F
  assert trap_to_idx(0xA800) == 0

def test_trap_index_roundtrip():
  for idx in range(0x300):
    assert trap_to_idx(idx_to_trap(idx)) == idx
  for trap in list(range(0xA000, 0xA100)) + list(range(0xA800, 0xAA00)):
    assert idx_to_trap(trap_to_idx(trap)) == trap
