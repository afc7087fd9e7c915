"""
Root test configuration: makes ``aakit`` importable from a source checkout.
"""
import sys
from pathlib import Path

SRC_PATH = Path(__file__).resolve().parent.parent / "src"

if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))
