# Puts the top level tools (extract_traps.py, rom_patch.py) and the macpatch
# package on the import path, also when running without an install.

import os, sys

ROOT_DIR = os.path.dirname(os.path.abspath(__file__))
if ROOT_DIR not in sys.path:
  sys.path.insert(0, ROOT_DIR)
