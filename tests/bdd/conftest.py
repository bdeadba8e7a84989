"""
Shared fixtures and step definitions for BDD tests.

- runner, mock_service, context: available to all scenario files in this directory
- no_logging: autouse, prevents log file creation during tests
- the reminder run, 'the output contains' and 'the command fails' steps: shared across all feature files
"""

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import when, then, parsers

from studiocrm.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_service():
    with patch("studiocrm.cli.main.service") as mock:
        yield mock


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture(autouse=True)
def no_logging():
    with patch("studiocrm.cli.main.configure_logging"):
        yield


@when("the photographer runs the reminder check")
def run_reminders(runner, context):
    context["result"] = runner.invoke(cli, ["reminders"])


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )


@then(parsers.parse('the output does not contain "{text}"'))
def output_does_not_contain(context, text):
    assert text not in context["result"].output, (
        f"Did not expect {text!r} in output:\n{context['result'].output}"
    )


@then("the command fails")
def command_fails(context):
    assert context["result"].exit_code == 1, context["result"].output
