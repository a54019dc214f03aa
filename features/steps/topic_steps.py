"""
Consensus topic step definitions: threshold keys, topic creation, publishing
and receiving messages.
"""
from behave import given, when, then
import sys
from pathlib import Path

# Get project root (go up 3 levels: steps -> features -> project_root)
project_root = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(project_root))

from features.steps.ledger_helpers import parse_roles, steps_logger
from utils.custom_exceptions import PreconditionError, TimeoutError


@given('A {threshold:d} of {total:d} threshold key with the {roles_text} account')
@given('A {threshold:d} of {total:d} threshold key with the {roles_text} accounts')
def step_threshold_key(context, threshold, total, roles_text):
    roles = parse_roles(roles_text)
    if len(roles) != total:
        raise PreconditionError(
            f"Threshold key names {len(roles)} accounts but the step says {total}",
            resource="threshold_key",
        )
    context.fixtures.threshold_key(threshold, roles)


@when('A topic is created with the memo "{memo}" with the {role:w} account as the submit key')
def step_create_topic_single_key(context, memo, role):
    topic = context.fixtures.create_topic(memo, submit_key=context.ledger.participant(role))
    steps_logger.info(f"Topic {topic.topic_id} created, submit key of the {role} account")


@when('A topic is created with the memo "{memo}" with the threshold key as the submit key')
def step_create_topic_threshold_key(context, memo):
    key = context.ledger.require_threshold_key()
    topic = context.fixtures.create_topic(memo, submit_key=key)
    steps_logger.info(f"Topic {topic.topic_id} created with a {key.threshold} of "
                      f"{len(key.members)} submit key")


@when('The message "{message}" is published to the topic')
@when('The message "{message}" is published to the topic with threshold key')
def step_publish(context, message):
    receipt = context.fixtures.publish(message)
    receipt.raise_for_status()
    steps_logger.info(f"Published '{message}' as sequence number {receipt.topic_sequence_number}")


@when('An attempt to publish the message "{message}" signed only by the {role:w} account fails')
def step_publish_with_single_signer_fails(context, message, role):
    """The operator always co-signs, so name the operator to send a single signature."""
    signer = context.ledger.participant(role)
    error = context.verifier.expect_failure(lambda: context.fixtures.publish(message, signers=[signer]))
    steps_logger.info(f"Publishing with one signature failed as expected: {error}")


@then('The message "{message}" is received by the topic and can be printed to the console')
@then('The message "{message}" is received by the topic and can be printed to the console with threshold key')
def step_message_received(context, message):
    received = context.verifier.wait_for_message(message)
    steps_logger.info(f"Message received: {received.text}")


@then('No message is received by the topic within {seconds:g} second')
@then('No message is received by the topic within {seconds:g} seconds')
def step_no_message(context, seconds):
    waiter = context.verifier.subscribe()
    try:
        received = waiter.wait_for_any(seconds)
    except TimeoutError:
        steps_logger.info(f"No message arrived within {seconds}s")
        return
    raise AssertionError(f"Unexpected message received: {received.text}")
