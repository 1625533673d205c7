#!/usr/bin/env python
# -*- coding: utf-8 -*-

# Copyright 2025 David Guillen Fandos <david@davidgf.net>

# ROM patcher.
# Applies a patch-set (JSON) to the ROM, resource files and/or disk images it
# describes. Every unit writes a new file, and only if all its patches apply.
# Units are independent, so they run in parallel when there are several.

from tqdm import tqdm
import macpatch.patcher
import macpatch.patchset
import sys, json, multiprocessing

def wrapper(unit):
  # Errors are returned as strings, the pool must not die because of one unit.
  logs = []
  try:
    ret = macpatch.patchset.process_unit(unit, log=logs.append)
    return {"status": "ok", "log": logs} | ret
  except macpatch.patcher.AmbiguousResourceError as err:
    return {
      "name": unit["name"],
      "status": "ambiguous",
      "error": str(err),
      "offsets": [hex(x) for x in err.offsets],
      "log": logs,
    }
  except LookupError as err:
    status, error = "not-found", str(err)
  except (ValueError, OSError) as err:
    status, error = "failed", str(err)
  return {
    "name": unit["name"],
    "status": status,
    "error": error,
    "log": logs,
  }

def run_units(units, jobs=1):
  if jobs <= 1 or len(units) <= 1:
    return [wrapper(u) for u in units]
  with multiprocessing.Pool(min(jobs, len(units))) as p:
    return list(tqdm(p.imap(wrapper, units), total=len(units)))

if __name__ == "__main__":
  import argparse

  parser = argparse.ArgumentParser(prog='rom_patch')
  parser.add_argument('--patchset', dest='patchset', required=True, help='Input JSON file containing the patch units')
  parser.add_argument('--unit', dest='units', nargs='+', default=None, help='Only process the named units')
  parser.add_argument('--report', dest='report', default=None, help='Output path for a JSON report')
  parser.add_argument('--jobs', dest='jobs', type=int, default=multiprocessing.cpu_count(), help='Number of parallel units')

  args = parser.parse_args()

  pset = macpatch.patchset.load_patchset(args.patchset)
  units = pset["units"]
  if args.units:
    unknown = set(args.units) - set(u["name"] for u in units)
    if unknown:
      raise ValueError("Unknown units: " + ", ".join(sorted(unknown)))
    units = [u for u in units if u["name"] in args.units]

  results = run_units(units, args.jobs)

  for r in results:
    for line in r["log"]:
      print("[%s] %s" % (r["name"], line))
    if r["status"] == "ok":
      print("[%s] Wrote %s (%d patches)" % (r["name"], r["output"], len(r["patches"])))
    else:
      print("[%s] %s: %s" % (r["name"], r["status"], r["error"]), file=sys.stderr)

  if args.report:
    with open(args.report, "w") as ofd:
      ofd.write(json.dumps(results, indent=2, sort_keys=True))

  if any(r["status"] != "ok" for r in results):
    sys.exit(1)
