#!/usr/bin/env python
# -*- coding: utf-8 -*-

# Copyright 2025 David Guillen Fandos <david@davidgf.net>

# Trap name table and label generation.
# Trap names come from a text file with lines like:
#   A9A0,_GetResource
# They are matched to the decoded trap table to emit labels (as Ghidra
# script lines) for every trap implementation found in the ROM.

import re
from macpatch.traps import TrapDecoder, trap_to_idx, idx_to_trap, ROM_BASE, UNIMPL

GHIDRA_LABEL = 'createLabel(currentProgram.parseAddress("0x%06X")[0], "%s", True)'

def read_trap_names(lines):
  names, traps = {}, {}
  for lnum, line in enumerate(lines, 1):
    line = line.strip()
    if not line or line.startswith("#"):
      continue
    m = re.match(r"^([0-9A-Fa-f]{4})\s*,\s*([^\s,]+)$", line)
    if not m:
      raise ValueError("Invalid trap name entry at line %d: %s" % (lnum, line))

    trap, name = int(m.group(1), 16), m.group(2)
    idx = trap_to_idx(trap)
    # Synonyms (or wrong entries) end up in the same slot, do not guess.
    if idx in names:
      raise ValueError("Multiple entries for 0x%04X: %s vs %s (0x%04X)" % (
        trap, name, names[idx], traps[idx]))
    names[idx] = name
    traps[idx] = trap

  return names

def load_trap_names(fn):
  with open(fn, "r") as fd:
    return read_trap_names(fd)

def trap_labels(decoder, names, unimpl=UNIMPL):
  # Yields (index, trap, address, name) for every entry that deserves a label
  for idx, addr in enumerate(decoder):
    name = names.get(idx)
    if addr == unimpl and name is None:
      continue   # Unimplemented and unnamed, no label needed
    if name is None:
      name = "_Unk_%04X" % idx_to_trap(idx)
    yield idx, idx_to_trap(idx), addr, name

# Returns the label list and the offset right after the table end marker
def rom_labels(rom, names, table_start=None, base=ROM_BASE, unimpl=UNIMPL):
  dec = TrapDecoder(rom, table_start, base, unimpl)
  return list(trap_labels(dec, names, unimpl)), dec.cursor

def ghidra_label(addr, name):
  return GHIDRA_LABEL % (addr, name)
