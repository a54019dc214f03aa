"""
Unit tests for the click CLI in scripts/run.py.
"""

import importlib.util
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

import yaml
from click.testing import CliRunner

from tests.unit.ledger_fixtures import make_accounts_document
from utils.config_loader import config_loader
from utils.logger import get_current_log_level, set_log_level

RUN_SCRIPT = Path(__file__).resolve().parent.parent.parent / "scripts" / "run.py"


def load_run_module():
    spec = importlib.util.spec_from_file_location("ledger_harness_run", RUN_SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestCli(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.run_module = load_run_module()

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_dir = Path(self.temp_dir)
        (self.config_dir / "config.ini").write_text("[LEDGER]\noperator = second\n", encoding="utf-8")
        self.document = make_accounts_document(2)
        (self.config_dir / "accounts.yaml").write_text(yaml.safe_dump(self.document), encoding="utf-8")

        self.previous_dir = config_loader.config_dir
        self.previous_level = get_current_log_level()
        self.runner = CliRunner()

    def tearDown(self):
        config_loader.config_dir = self.previous_dir
        config_loader.reload_config()
        set_log_level(self.previous_level)
        shutil.rmtree(self.temp_dir)

    def invoke(self, *args):
        return self.runner.invoke(self.run_module.cli, ["--config-dir", self.temp_dir, *args])

    def test_accounts_masks_keys(self):
        result = self.invoke("accounts")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("alice", result.output)
        self.assertIn("0.0.1002", result.output)
        for entry in self.document["accounts"]:
            self.assertNotIn(entry["private_key"], result.output)

    def test_validate_config(self):
        result = self.invoke("validate-config")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Operator: bob (0.0.1002)", result.output)
        self.assertIn("Participants: 2", result.output)

    def test_validate_config_lists_sections(self):
        (self.config_dir / "config.ini").write_text(
            "[LEDGER]\noperator = second\n\n[REPORTING]\nformat = json\n", encoding="utf-8")
        result = self.invoke("validate-config")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Sections: LEDGER, REPORTING", result.output)
        self.assertNotIn("defaults in use", result.output)

    def test_validate_config_with_missing_section_uses_defaults(self):
        result = self.invoke("validate-config", "--section", "STAGING")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("No [STAGING] section, defaults in use", result.output)
        # the default operator is the first account
        self.assertIn("Operator: alice (0.0.1001)", result.output)

    def test_validate_config_reports_bad_accounts(self):
        (self.config_dir / "accounts.yaml").write_text("accounts: []\n", encoding="utf-8")
        result = self.invoke("validate-config")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Invalid accounts configuration", result.output)

    def test_run_builds_behave_arguments(self):
        with patch.object(self.run_module, "behave_main", return_value=0) as behave_main:
            result = self.invoke("run", "--tags", "@token", "--junit", "--junit-directory",
                                 str(self.config_dir / "junit"), "--dry-run", "features/token_service.feature")
        self.assertEqual(result.exit_code, 0, result.output)
        args = behave_main.call_args[0][0]
        self.assertIn("--tags=@token", args)
        self.assertIn("--junit", args)
        self.assertIn("--dry-run", args)
        self.assertEqual(args[-1], "features/token_service.feature")

    def test_run_propagates_failure_exit_code(self):
        with patch.object(self.run_module, "behave_main", return_value=1):
            result = self.invoke("run")
        self.assertEqual(result.exit_code, 1)


if __name__ == '__main__':
    unittest.main()
