#!/usr/bin/env python
# -*- coding: utf-8 -*-

# Copyright 2025 David Guillen Fandos <david@davidgf.net>

# Trap extractor.
# Decodes the trap table in the ROM and prints a label for every trap
# implementation, either as Ghidra script lines or as JSON.

import macpatch.traps
import macpatch.trapnames
import sys, json

def extract(rom, names, fmt="ghidra", table_offset=macpatch.traps.TABLE_OFFSET,
            base=macpatch.traps.ROM_BASE, unimpl=macpatch.traps.UNIMPL):
  table_start = macpatch.traps.get_table_start(rom, table_offset)
  labels, cursor = macpatch.trapnames.rom_labels(rom, names, table_start, base, unimpl)

  if fmt == "json":
    out = [json.dumps([{
      "index": idx,
      "trap": "0x%04X" % trap,
      "address": "0x%06X" % addr,
      "name": name,
    } for idx, trap, addr, name in labels], indent=2)]
  else:
    out = [macpatch.trapnames.ghidra_label(addr, name) for _, _, addr, name in labels]

  return out, cursor

if __name__ == "__main__":
  import argparse

  parser = argparse.ArgumentParser(prog='extract_traps')
  parser.add_argument('--rom', dest='rom', required=True, help='ROM image file')
  parser.add_argument('--names', dest='names', default=None, help='Trap name list (trap,name lines)')
  parser.add_argument('--format', dest='format', default="ghidra", help='Format: ghidra or json')
  parser.add_argument('--table-offset', dest='toff', type=lambda x: int(x, 0),
                      default=macpatch.traps.TABLE_OFFSET, help='ROM offset where the table pointer is stored')
  parser.add_argument('--base', dest='base', type=lambda x: int(x, 0),
                      default=macpatch.traps.ROM_BASE, help='ROM base address')
  parser.add_argument('--unimpl', dest='unimpl', type=lambda x: int(x, 0),
                      default=macpatch.traps.UNIMPL, help='Address of the unimplemented trap routine')

  args = parser.parse_args()

  if args.format not in ["ghidra", "json"]:
    raise ValueError("Invalid format")

  names = {}
  if args.names:
    names = macpatch.trapnames.load_trap_names(args.names)

  with open(args.rom, "rb") as fd:
    rom = fd.read()

  out, cursor = extract(rom, names, args.format, args.toff, args.base, args.unimpl)
  for line in out:
    print(line)

  print("Final table pointer: 0x%06X" % cursor, file=sys.stderr)
