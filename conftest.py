"""
Simplified conftest.py - uses robo-mobile-test-kit plugin for report generation
All fixtures, hooks, and environment setup are provided by the robo_mobile_test_kit plugin
"""

import pytest
import logging

logger = logging.getLogger(__name__)

pytest_plugins = ["pytester"]


# ============================================================================
# Project-Specific Fixtures (if needed)
# ============================================================================
# Standard fixtures (row, run_settings) are provided by robo_mobile_test_kit.
# A project running against a device adds its own 'driver' fixture here; the
# plugin then resets the app after every test and screenshots failures.


# ============================================================================
# robo_modify_scenario_result Hook Implementation
# ============================================================================


@pytest.hookimpl
def robo_modify_scenario_result(scenario_result, test_data):
    """
    Example implementation of robo_modify_scenario_result hook.

    Names data-driven scenarios after the 'Test Case Name' column and tags
    them with the 'Phase' column when the row has one.

    Args:
        scenario_result: cucumber-JSON scenario dict
        test_data: Dictionary with parametrized test data from CSV

    Returns:
        The adjusted scenario dict, or None to keep it unchanged.
    """
    if not test_data:
        return None
    test_case_name = test_data.get("Test Case Name", "")
    if test_case_name:
        scenario_result["name"] = test_case_name
    phase = test_data.get("Phase", "")
    if phase:
        scenario_result.setdefault("tags", []).append({"name": f"@{phase}"})
    return scenario_result


# ============================================================================
# robo_html_content_ready Hook Implementation
# ============================================================================


@pytest.hookimpl
def robo_html_content_ready(config, html_content, report_path):
    """
    Example implementation of robo_html_content_ready hook.

    Called after the consolidated HTML report is written. Use this to send
    the report via email or integrate with other systems.
    """
    logger.info(f"HTML report ready at: {report_path}")
