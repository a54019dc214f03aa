"""
Runs the behave features under features/ through the CLI.

Every step of every scenario has to match a step definition and pass against
the in-process network built from config/.
"""

import importlib.util
import unittest
from pathlib import Path
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from click.testing import CliRunner

from utils.config_loader import config_loader
from utils.logger import get_current_log_level, set_log_level

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
FEATURES_DIR = PROJECT_ROOT / "features"


def load_run_module():
    spec = importlib.util.spec_from_file_location("ledger_harness_run_features",
                                                  PROJECT_ROOT / "scripts" / "run.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestFeatureRun(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.run_module = load_run_module()

    def setUp(self):
        self.previous_dir = config_loader.config_dir
        self.previous_level = get_current_log_level()
        self.runner = CliRunner()

    def tearDown(self):
        config_loader.config_dir = self.previous_dir
        config_loader.reload_config()
        set_log_level(self.previous_level)

    def run_features(self, *args):
        return self.runner.invoke(self.run_module.cli, [
            "--config-dir", str(PROJECT_ROOT / "config"),
            "--log-level", "WARNING",
            "run", "--format", "null", *args,
        ])

    def test_all_features_pass(self):
        result = self.run_features()
        self.assertEqual(result.exit_code, 0, result.output)

    def test_single_feature_by_tag(self):
        result = self.run_features("--tags", "@token", str(FEATURES_DIR))
        self.assertEqual(result.exit_code, 0, result.output)


if __name__ == '__main__':
    unittest.main()
