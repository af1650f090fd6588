"""
Hook specifications for robo_mobile_test_kit plugin.
These hooks allow source projects to customize the reporting behavior.
"""

import pytest


@pytest.hookspec(firstresult=True)
def robo_modify_scenario_result(scenario_result, test_data):
    """
    Hook specification for source projects to adjust a scenario before it is
    written into the run's JSON fragment.

    Source projects can implement this hook in their conftest.py to:
    - Add tags derived from the data row
    - Rename scenarios (e.g. with a test case id)
    - Attach extra fields the HTML template understands

    Args:
        scenario_result: cucumber-JSON scenario dict (name, id, tags, steps)
        test_data: Dictionary with the parametrized data row, empty if none

    Returns:
        Dictionary replacing scenario_result, or None to keep it unchanged.

    Example in source project's conftest.py:
        @pytest.hookimpl
        def robo_modify_scenario_result(scenario_result, test_data):
            scenario_result["name"] = test_data.get("Test Case Name") or scenario_result["name"]
            return scenario_result
    """


@pytest.hookspec
def robo_html_content_ready(config, html_content, report_path):
    """
    Hook specification for source projects to receive generated HTML report content.

    Called after the consolidated HTML report is written. Use it to mail the
    report, upload it, or hand it to another system.

    Args:
        config: Pytest config object with access to options and settings
        html_content: Complete HTML content as string
        report_path: Absolute path to the saved HTML report file

    Returns:
        None. This is a notification hook, return values are ignored.
    """
