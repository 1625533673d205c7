#!/usr/bin/env python
# -*- coding: utf-8 -*-

# Copyright 2025 David Guillen Fandos <david@davidgf.net>

# Patch-set loading and application.
# A patch-set is a JSON file with a list of units. Every unit patches one
# input file (ROM, resource file or disk image) and writes a new file, see
# patches/se_fdhd.json for an example. Addresses are hex strings, byte
# sequences are hex strings (spaces are allowed).
#
# If a unit has a "locate" entry, the resource signature is searched in the
# input image and all the patch addresses become relative to it.

import os, json, hashlib
from macpatch.patcher import (
  ExactPatch, PatternPatch, ArrayPatch, ResourceSignature,
  PatchConfigError, PatchCountError, PatchError,
  apply_patch, find_resource, describe)

class ImageHashError(PatchError):
  pass

def parse_int(v):
  if isinstance(v, int):
    return v
  return int(v, 0)

def parse_bytes(v):
  if isinstance(v, list):
    return bytes(v)
  return bytes.fromhex(v)

def parse_patch(e):
  try:
    ptype = e["type"]
    if ptype == "exact":
      return ExactPatch(parse_int(e["addr"]), parse_bytes(e["before"]), parse_bytes(e["after"]))
    elif ptype == "pattern":
      return PatternPatch(parse_bytes(e["pattern"]), parse_bytes(e["replacement"]))
    elif ptype == "array":
      return ArrayPatch(parse_int(e["start"]), parse_int(e["end"]), parse_int(e.get("stride", 1)),
                        parse_bytes(e["before"]), parse_bytes(e["after"]))
  except (KeyError, TypeError, ValueError) as err:
    raise PatchConfigError("Invalid patch entry %s: %s" % (json.dumps(e), err)) from err

  raise PatchConfigError("Unknown patch type: " + str(e.get("type")))

def parse_signature(e):
  try:
    rtype = e["type"].encode("mac_roman") if isinstance(e["type"], str) else parse_bytes(e["type"])
    sig = ResourceSignature(parse_bytes(e["prefix"]), rtype, parse_int(e["id"]))
  except (KeyError, TypeError, ValueError) as err:
    raise PatchConfigError("Invalid locate entry %s: %s" % (json.dumps(e), err)) from err

  if len(sig.prefix) != 4 or len(sig.rtype) != 4:
    raise PatchConfigError("Resource prefix and type must be 4 bytes long: " + json.dumps(e))
  return sig

def parse_unit(e, basedir="."):
  if "input" not in e or "output" not in e:
    raise PatchConfigError("Unit is missing input/output: " + json.dumps(e))

  unit = {
    "name": e.get("name", os.path.basename(e["input"])),
    "input": os.path.join(basedir, e["input"]),
    "output": os.path.join(basedir, e["output"]),
    "sha1": e.get("sha1"),
    "locate": None,
    "skip": 0,
    "patches": [],
  }
  if "locate" in e:
    unit["locate"] = parse_signature(e["locate"])
    try:
      unit["skip"] = parse_int(e["locate"].get("skip", 0))
    except (TypeError, ValueError) as err:
      raise PatchConfigError("Invalid locate skip %s: %s" % (json.dumps(e["locate"]), err)) from err

  for pe in e.get("patches", []):
    if not isinstance(pe, dict):
      raise PatchConfigError("Invalid patch entry: " + json.dumps(pe))
    # Pattern patches can declare how many times they are expected to match
    count = pe.get("count")
    try:
      count = None if count is None else parse_int(count)
    except (TypeError, ValueError) as err:
      raise PatchConfigError("Invalid patch count %s: %s" % (json.dumps(pe), err)) from err
    unit["patches"].append((parse_patch(pe), count))

  return unit

def load_patchset(fn):
  with open(fn, "r") as fd:
    pcont = json.load(fd)

  basedir = os.path.dirname(os.path.abspath(fn))
  units = [parse_unit(e, basedir) for e in pcont.get("units", [])]

  # Unit names are used to select them, ensure they are unique!
  names = [u["name"] for u in units]
  if len(names) != len(set(names)):
    raise PatchConfigError("Duplicate unit names in " + fn)

  return {
    "name": pcont.get("name", os.path.basename(fn)),
    "units": units,
  }

def patch_image(buf, unit, log=print):
  """Applies all the unit patches to buf (in place), returns the patch list.

  Any error stops the process and propagates, buf is then left half patched.
  """
  base = 0
  if unit["locate"] is not None:
    base = find_resource(buf, unit["locate"]) + unit["skip"]
    log("Found %s at 0x%x" % (describe(unit["locate"]), base))

  ret = []
  for idx, (p, count) in enumerate(unit["patches"]):
    log("Applying patch #%d: %s" % (idx, describe(p)))
    sites = apply_patch(buf, p, base)
    if count is not None and len(sites) != count:
      raise PatchCountError("Patch #%d matched %d times, %d expected: %s" % (
        idx, len(sites), count, describe(p)))
    ret.append({
      "patch": describe(p),
      "sites": [hex(x) for x in sites],
    })
  return ret

def process_unit(unit, log=print):
  if os.path.abspath(unit["input"]) == os.path.abspath(unit["output"]):
    raise PatchConfigError("Refusing to overwrite the input file: " + unit["input"])

  with open(unit["input"], "rb") as fd:
    buf = bytearray(fd.read())

  insha1 = hashlib.sha1(buf).hexdigest()
  if unit["sha1"] and unit["sha1"].lower() != insha1:
    raise ImageHashError("Input %s has SHA1 %s, expected %s" % (unit["input"], insha1, unit["sha1"]))

  patches = patch_image(buf, unit, log)

  # Only write the output once every patch went through, and never leave a
  # truncated file behind.
  tmpfn = unit["output"] + ".tmp"
  try:
    with open(tmpfn, "wb") as fd:
      fd.write(buf)
    os.replace(tmpfn, unit["output"])
  except OSError:
    if os.path.exists(tmpfn):
      os.remove(tmpfn)
    raise

  return {
    "name": unit["name"],
    "input": unit["input"],
    "output": unit["output"],
    "filesize": len(buf),
    "sha1-in": insha1,
    "sha1-out": hashlib.sha1(buf).hexdigest(),
    "patches": patches,
  }
