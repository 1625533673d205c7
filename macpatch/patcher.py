#!/usr/bin/env python
# -*- coding: utf-8 -*-

# Copyright 2025 David Guillen Fandos <david@davidgf.net>

# Binary patching and search machinery.
# Patches are plain immutable descriptors, applied in place to a bytearray:
#
#  - ExactPatch:   Fixed address, the "before" bytes must be present.
#  - PatternPatch: Search and replace of a byte sequence, anywhere.
#  - ArrayPatch:   Exact patch repeated every "stride" bytes (end inclusive).
#
# ResourceSignature is not a patch, it is used to locate a resource inside
# an image (ie. a disk image) where we do not know the offset beforehand.
#
# Every apply function returns the list of offsets that were patched.

import struct, collections

class PatchError(ValueError):
  pass

class PatchMismatchError(PatchError):
  def __init__(self, addr, expected, actual):
    self.addr = addr
    self.expected = bytes(expected)
    self.actual = bytes(actual)
    super().__init__("Patch 'before' doesn't match image at 0x%06x: expected %s, found %s" % (
      addr, self.expected.hex(), self.actual.hex()))

class PatchLengthError(PatchError):
  pass

class PatchConfigError(PatchError):
  pass

class PatchCountError(PatchError):
  pass

class ResourceNotFoundError(LookupError):
  def __init__(self, sig):
    self.sig = sig
    super().__init__("Resource %s not found" % describe(sig))

class AmbiguousResourceError(LookupError):
  def __init__(self, sig, offsets):
    self.sig = sig
    self.offsets = list(offsets)
    super().__init__("Resource %s found multiple times: %s" % (
      describe(sig), ", ".join(hex(x) for x in self.offsets)))

ExactPatch = collections.namedtuple("ExactPatch", ["addr", "before", "after"])
PatternPatch = collections.namedtuple("PatternPatch", ["pattern", "replacement"])
ArrayPatch = collections.namedtuple("ArrayPatch", ["start", "end", "stride", "before", "after"])
ResourceSignature = collections.namedtuple("ResourceSignature", ["prefix", "rtype", "rid"])

def describe(p):
  if isinstance(p, ExactPatch):
    return "exact 0x%06x %s -> %s" % (p.addr, p.before.hex(), p.after.hex())
  if isinstance(p, PatternPatch):
    return "pattern %s -> %s" % (p.pattern.hex(), p.replacement.hex())
  if isinstance(p, ArrayPatch):
    return "array 0x%06x-0x%06x/%d %s -> %s" % (
      p.start, p.end, p.stride, p.before.hex(), p.after.hex())
  if isinstance(p, ResourceSignature):
    return "'%s' #%d (prefix %s)" % (p.rtype.decode("mac_roman"), p.rid, p.prefix.hex())
  return repr(p)

def apply_exact(buf, p, base=0):
  if len(p.after) > len(p.before):
    raise PatchLengthError("Patch 'after' is longer than 'before': %s" % describe(p))

  addr = base + p.addr
  current = buf[addr: addr + len(p.before)] if addr >= 0 else b""
  if current != p.before:
    raise PatchMismatchError(addr, p.before, current)

  buf[addr: addr + len(p.after)] = p.after
  return [addr]

def find_all(buf, needle):
  # Every offset is checked (overlapping matches included)
  ret = []
  off = buf.find(needle)
  while off >= 0:
    ret.append(off)
    off = buf.find(needle, off + 1)
  return ret

def apply_pattern(buf, p, base=0):
  if len(p.pattern) != len(p.replacement):
    raise PatchLengthError("Pattern and replacement sizes differ: %s" % describe(p))
  if not p.pattern:
    raise PatchLengthError("Empty pattern")

  # Single pass, each offset sees the replacements done so far.
  ret = []
  off = buf.find(p.pattern)
  while off >= 0:
    buf[off: off + len(p.replacement)] = p.replacement
    ret.append(off)
    off = buf.find(p.pattern, off + 1)
  return ret

def array_sites(p):
  if p.stride <= 0:
    raise PatchConfigError("Array stride must be positive: %s" % describe(p))
  return range(p.start, p.end + 1, p.stride)

def apply_array(buf, p, base=0):
  if len(p.after) > len(p.before):
    raise PatchLengthError("Patch 'after' is longer than 'before': %s" % describe(p))

  ret = []
  for addr in array_sites(p):
    ret += apply_exact(buf, ExactPatch(addr, p.before, p.after), base)
  return ret

def signature_bytes(sig):
  if len(sig.prefix) != 4 or len(sig.rtype) != 4:
    raise PatchConfigError("Resource prefix and type must be 4 bytes long: %s" % describe(sig))
  if sig.rid < -0x8000 or sig.rid > 0xFFFF:
    raise PatchConfigError("Resource id out of range: %d" % sig.rid)
  return sig.prefix + sig.rtype + struct.pack(">H", sig.rid & 0xFFFF)

def find_resource(buf, sig):
  offsets = find_all(buf, signature_bytes(sig))
  if not offsets:
    raise ResourceNotFoundError(sig)
  if len(offsets) > 1:
    raise AmbiguousResourceError(sig, offsets)
  return offsets[0]

PATCH_FUNCTIONS = {
  ExactPatch:   apply_exact,
  PatternPatch: apply_pattern,
  ArrayPatch:   apply_array,
}

# Applies any patch, base is added to the patch address (ie. resource offset)
def apply_patch(buf, p, base=0):
  if type(p) not in PATCH_FUNCTIONS:
    raise PatchConfigError("Unsupported patch type: %r" % (p,))
  return PATCH_FUNCTIONS[type(p)](buf, p, base)
