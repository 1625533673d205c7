#!/usr/bin/env python
# -*- coding: utf-8 -*-

# Copyright 2025 David Guillen Fandos <david@davidgf.net>

# Trap dispatch table decoder.
# The ROM carries a compact table that maps every OS and Toolbox trap to the
# address of its implementation. Entries are delta-encoded against a running
# pointer, using a variable number of bytes per entry:
#
#  0x80         Unimplemented trap (points to the "unimplemented" routine)
#  0xFF + 4B    Absolute ROM offset (big endian)
#  1xxx.xxxx    Short forward delta, in words
#  0xxx.xxxx x  Long delta (16 bit, in words). 0x4000 flags a negative delta.
#  0x00 0x00    End of table
#
# The decoder keeps its state as a (cursor, pointer) tuple and exposes a pure
# step function, so that partial tables can be tested easily.

import struct, collections

# Offset from start of ROM where the table offset is stored.
TABLE_OFFSET = 0x22

# Base address of the ROM.
ROM_BASE = 0x400000

# Address of the "unimplemented" trap routine.
UNIMPL = 0x400768

# Number of toolbox trap slots (they come first in the table)
TOOLBOX_SLOTS = 0x200

class MalformedTableError(ValueError):
  pass

DecoderState = collections.namedtuple("DecoderState", ["cursor", "pointer"])

def _read(mem, offset, size):
  if offset < 0 or offset + size > len(mem):
    raise MalformedTableError(
      "Trap table read out of bounds at 0x%06x (image is 0x%x bytes)" % (offset, len(mem)))
  return mem[offset: offset + size]

def read_long(mem, offset):
  return struct.unpack(">I", _read(mem, offset, 4))[0]

def get_table_start(rom, table_offset=TABLE_OFFSET):
  return read_long(rom, table_offset)

def step(mem, state, base=ROM_BASE, unimpl=UNIMPL):
  """Decodes one table entry.

  Returns a (new_state, address) tuple. address is None once the end marker
  has been consumed, in that case new_state points right after it.
  """
  cursor, pointer = state
  b = _read(mem, cursor, 1)[0]

  if b == 0x80:
    # Unimplemented, the running pointer is not updated
    return DecoderState(cursor + 1, pointer), unimpl

  if b == 0xFF:
    pointer = read_long(mem, cursor + 1) + base
    if pointer > 0xFFFFFFFF:
      raise MalformedTableError("Absolute entry at 0x%06x overflows" % cursor)
    return DecoderState(cursor + 5, pointer), pointer

  if b & 0x80:
    offset = b & 0x7F
    cursor += 1
  else:
    offset = struct.unpack(">H", _read(mem, cursor, 2))[0]
    cursor += 2
    if offset == 0:
      return DecoderState(cursor, pointer), None

  pointer += offset * 2
  # Bit 14 encodes a negative delta (biased by 0x10000 bytes)
  if offset & 0x4000:
    pointer -= 0x10000

  if pointer < 0 or pointer > 0xFFFFFFFF:
    raise MalformedTableError(
      "Running pointer out of range (0x%x) at 0x%06x" % (pointer, cursor))

  return DecoderState(cursor, pointer), pointer

class TrapDecoder(object):
  """Iterates over the absolute addresses of a trap table.

  The iterator is one-shot: once the end marker is found it stays exhausted.
  cursor holds the offset right after the last consumed byte.
  """
  def __init__(self, mem, table_start=None, base=ROM_BASE, unimpl=UNIMPL):
    if table_start is None:
      table_start = get_table_start(mem)
    self._mem = mem
    self._base = base
    self._unimpl = unimpl
    self._state = DecoderState(table_start, base)
    self._done = False

  def __iter__(self):
    return self

  def __next__(self):
    if self._done:
      raise StopIteration
    self._state, addr = step(self._mem, self._state, self._base, self._unimpl)
    if addr is None:
      self._done = True
      raise StopIteration
    return addr

  @property
  def exhausted(self):
    return self._done

  @property
  def cursor(self):
    return self._state.cursor

  @property
  def pointer(self):
    return self._state.pointer

def decode(mem, table_start=None, base=ROM_BASE, unimpl=UNIMPL):
  return TrapDecoder(mem, table_start, base, unimpl)

# Index <-> trap number mapping. Toolbox traps (A8xx-ABxx) use the first
# 0x200 slots, OS traps (A0xx) go after them.
def trap_to_idx(trap_num):
  if trap_num & 0x0800:
    return trap_num & 0x1FF
  return (trap_num & 0xFF) + TOOLBOX_SLOTS

def idx_to_trap(idx):
  if idx >= TOOLBOX_SLOTS:
    return 0xA000 + idx - TOOLBOX_SLOTS
  return 0xA800 + idx
