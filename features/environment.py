# features/environment.py
import sys
import time
from pathlib import Path

# Get project root (go up 2 levels: features -> project_root)
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from harness.context import ScenarioContext
from harness.fixtures import FixtureBuilders
from harness.verifier import OutcomeVerifier
from ledger.client import LedgerClient
from ledger.identity_store import IdentityStore
from utils.config_loader import config_loader
from utils.logger import log_test_result, log_test_step, logger, test_logger


def _new_client(context):
    return LedgerClient.for_local_network(context.identity_store, context.ledger_config)


def before_all(context):
    """Load configuration and participant credentials once per run."""
    logger.info("Starting ledger scenario execution")
    context.test_start_time = time.time()

    context.ledger_config = config_loader.get_ledger_config()
    context.identity_store = IdentityStore.from_config(config_loader, context.ledger_config.accounts_file)
    logger.info(f"Loaded {len(context.identity_store)} participants from "
                f"{context.ledger_config.accounts_file}")

    # 'run' scope shares one network across scenarios; 'scenario' scope isolates each one
    context.shared_client = None
    if context.ledger_config.network_scope == 'run':
        context.shared_client = _new_client(context)

    context.test_config = {
        'start_time': context.test_start_time,
        'total_scenarios': 0,
        'passed_scenarios': 0,
        'failed_scenarios': 0
    }


def before_feature(context, feature):
    """Setup before each feature."""
    logger.info(f"Starting feature: {feature.name}")
    context.feature_start_time = time.time()

    context.feature_scenarios = 0
    context.feature_passed = 0
    context.feature_failed = 0


def before_scenario(context, scenario):
    """Give every scenario its own context, and by default its own network."""
    test_logger.info(f"Starting scenario: {scenario.name}")
    context.scenario_start_time = time.time()

    client = context.shared_client or _new_client(context)
    context.ledger = ScenarioContext(
        context.identity_store,
        client,
        context.ledger_config,
        owns_client=context.shared_client is None,
    )
    context.fixtures = FixtureBuilders(context.ledger)
    context.verifier = OutcomeVerifier(context.ledger)


def after_scenario(context, scenario):
    """Cleanup after each scenario."""
    scenario_duration = time.time() - context.scenario_start_time

    context.test_config['total_scenarios'] += 1
    context.feature_scenarios += 1

    if scenario.status.name == "passed":
        log_test_result(scenario.name, "passed", duration=f"{scenario_duration:.2f}s")
        context.test_config['passed_scenarios'] += 1
        context.feature_passed += 1
    else:
        log_test_result(scenario.name, "failed", duration=f"{scenario_duration:.2f}s")
        context.test_config['failed_scenarios'] += 1
        context.feature_failed += 1

        if context.ledger.last_error:
            test_logger.error(f"Last error: {context.ledger.last_error}")

    context.ledger.close()


def after_feature(context, feature):
    """Cleanup after each feature."""
    feature_duration = time.time() - context.feature_start_time

    logger.info(f"Feature completed: {feature.name} (Duration: {feature_duration:.2f}s)")
    logger.info(f"Feature stats - Total: {context.feature_scenarios}, "
                f"Passed: {context.feature_passed}, Failed: {context.feature_failed}")


def after_all(context):
    """Cleanup after all tests."""
    total_duration = time.time() - context.test_start_time

    logger.info("=" * 60)
    logger.info("TEST EXECUTION SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total duration: {total_duration:.2f}s")
    logger.info(f"Total scenarios: {context.test_config['total_scenarios']}")
    logger.info(f"Passed scenarios: {context.test_config['passed_scenarios']}")
    logger.info(f"Failed scenarios: {context.test_config['failed_scenarios']}")

    if context.test_config['total_scenarios'] > 0:
        pass_rate = (context.test_config['passed_scenarios'] / context.test_config['total_scenarios']) * 100
        logger.info(f"Pass rate: {pass_rate:.1f}%")

    logger.info("=" * 60)

    if context.shared_client is not None:
        context.shared_client.close()


def before_step(context, step):
    log_test_step(step.name, keyword=step.keyword.strip())


def after_step(context, step):
    """Log step execution details."""
    if step.status.name == "failed":
        test_logger.error(f"Step failed: {step.name}")
        if getattr(step, 'exception', None):
            test_logger.error(f"Exception: {step.exception}")
            context.ledger.last_error = step.exception


def before_tag(context, tag):
    """Setup based on scenario tags."""
    if tag in ("token", "topic", "transfer", "account"):
        logger.debug(f"Setting up for {tag} scenario")
