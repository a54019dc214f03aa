"""Test configuration shared by the unit tests."""
import os
import sys
from pathlib import Path

# Keep test runs from writing logs/ledger_harness.log; must run before utils.logger is imported
os.environ.setdefault('LOG_TO_FILE', 'false')
os.environ.setdefault('LOG_TO_CONSOLE', 'false')

# Add project root so `ledger`, `harness` and `utils` import as packages
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
