"""
Robo Mobile Test Kit - Pytest Plugin
Records every test as a cucumber-JSON scenario, writes one JSON fragment per
process, and consolidates the fragments into one deduplicated JSON file and
an HTML report once the run is over.

PYTEST HOOK EXECUTION ORDER (Session Lifecycle):
=====================================================

PHASE 1: SESSION INITIALIZATION
1. pytest_addoption             - Register command-line options
2. pytest_addhooks              - Register robo_* hook specifications
3. pytest_plugin_registered     - Unregister pytest-xdist when parallel mode is off
4. pytest_configure             - Resolve RunSettings, logging and per-process state
5. pytest_report_header         - Platform, target and capability header
6. pytest_sessionstart          - Clear old fragments, reset downloads (controlling process)

PHASE 2: TEST COLLECTION
7. pytest_generate_tests        - Parametrize tests with CSV/Excel/JSON data

PHASE 3: TEST EXECUTION (per test)
8. pytest_runtest_makereport    - Build the scenario after teardown
9. pytest_bdd_* (optional)      - Record Gherkin steps when pytest-bdd is installed

PHASE 4: SESSION FINALIZATION
10. pytest_sessionfinish        - Write this process's fragment
11. pytest_terminal_summary     - Per-feature summary of all fragments
12. pytest_unconfigure          - Collect -> deduplicate -> render (controlling process)

CUSTOM HOOKS:
========================================
- robo_modify_scenario_result   - Adjust a scenario before it is recorded
- robo_html_content_ready       - Receive the rendered HTML report
"""

import logging
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from . import hookspec
from .config import build_run_settings, get_capabilities, get_services, load_environment
from .utils import get_env, load_test_data
from .utils.AppUtil import reset_mobile_app
from .utils.RoboHelper import (
    add_scenario_to_features,
    build_scenario_result,
    capture_screenshot,
    describe_report_failure,
    feature_for_item,
    generate_report,
    get_version,
    open_report,
    print_results_summary,
    reset_download_dir,
    scenario_audit_line,
    scenario_name_for_item,
)
from .utils.reports.errors import ReportError
from .utils.reports.JsonReportUtils import (
    clear_fragments,
    collect_fragments,
    deduplicate_scenarios,
    write_json_atomic,
)


logger = logging.getLogger(__name__)
logger.propagate = True

PACKAGE_LOGGER = "robo_mobile_test_kit"


def _is_worker(config):
    return hasattr(config, "workerinput")


def _fragment_name(config):
    if _is_worker(config):
        return f"{config.workerinput.get('workerid', 'worker')}.json"
    return "main.json"


# ============================================================================
# HOOK 1: pytest_addoption
# Execution: Very first - before plugins are loaded
# Purpose: Register custom command-line options for the pytest command
# ============================================================================


def pytest_addoption(parser):
    """
    Register command-line options for the robo-reporter plugin.

    Each option falls back to an environment variable (shown in brackets).
    """
    group = parser.getgroup("robo-reporter", "Robo Reporter Options")
    group.addoption(
        "--robo-suite",
        action="store",
        dest="robo_suite",
        default=None,
        help="Suite name used in the HTML report file name [SUITE]",
    )
    group.addoption(
        "--robo-env",
        action="store",
        dest="robo_env",
        default=None,
        help="Execution target: local or browserstack [RUN_ON]",
    )
    group.addoption(
        "--robo-platform",
        action="store",
        dest="robo_platform",
        default=None,
        help="Platform under test: AppAndroid or AppiOS [PLATFORM]",
    )
    group.addoption(
        "--robo-report-dir",
        action="store",
        dest="robo_report_dir",
        default=None,
        help="Directory for HTML reports (default: reports/html) [REPORT_DIR]",
    )
    group.addoption(
        "--robo-json-dir",
        action="store",
        dest="robo_json_dir",
        default=None,
        help="Directory for JSON fragments (default: reports/json/tmp) [JSON_DIR]",
    )
    group.addoption(
        "--robo-download-dir",
        action="store",
        dest="robo_download_dir",
        default=None,
        help="Shared download directory, emptied at session start (default: tempDownloads) [DOWNLOAD_DIR]",
    )
    group.addoption(
        "--robo-open-report",
        action="store_true",
        dest="robo_open_report",
        default=None,
        help="Open the HTML report in the default browser when the run ends [OPEN_REPORT]",
    )
    group.addoption(
        "--robo-theme",
        action="store",
        dest="robo_theme",
        default=None,
        help="HTML report theme: bootstrap or simple [REPORT_THEME]",
    )
    group.addoption(
        "--robo-store-screenshots",
        action="store_true",
        dest="robo_store_screenshots",
        default=None,
        help="Store failure screenshots as files instead of inlining them [STORE_SCREENSHOTS]",
    )
    group.addoption(
        "--robo-log-level",
        action="store",
        dest="robo_log_level",
        default=None,
        help="Log level for robo_mobile_test_kit (default: DEBUG) [LOG_LEVEL]",
    )


# ============================================================================
# HOOK 2: pytest_addhooks
# Execution: While the plugin is registered, before pytest_configure
# Purpose: Make the robo_* hooks known so conftest.py files can implement them
# ============================================================================


def pytest_addhooks(pluginmanager):
    """
    Register the robo_* hook specifications from hookspec.py.

    Hooks made available to projects (implement them in conftest.py):
    - robo_modify_scenario_result(scenario_result, test_data): adjust the
      cucumber-JSON scenario of a finished test; the first non-None
      result is used
    - robo_html_content_ready(config, html_content, report_path): receive
      the rendered HTML report (send it, archive it, ...)
    """
    pluginmanager.add_hookspecs(hookspec)


# ============================================================================
# HOOK 3: pytest_plugin_registered
# Execution: When each plugin is registered (after addoption)
# Purpose: Manage plugin lifecycle - can unregister plugins if conditions met
# ============================================================================


def pytest_plugin_registered(plugin, manager):
    """
    Unregister pytest-xdist's DSession when PARALLEL_EXECUTION is N.

    With DSession gone, a stray `-n` on the command line runs the tests
    serially in the controlling process, which then writes main.json as its
    only fragment.
    """
    if str(plugin).find("xdist.dsession.DSession") != -1:
        parallel_execution = get_env("PARALLEL_EXECUTION", "N").strip().upper()
        if parallel_execution == "N":
            logger.warning("Parallel execution disabled, unregistering pytest-xdist")
            manager.unregister(plugin)


# ============================================================================
# HOOK 4: pytest_configure
# Execution: After command-line parsing and all plugins loaded
# Purpose: Resolve RunSettings, set the log level, initialize per-process state
# Runs on: Both master and worker processes
# ============================================================================


def pytest_configure(config):
    """
    Initialize robo-reporter plugin configuration.

    Process:
    - Register the datafile marker
    - Load .env and .env.<APP_ENV>
    - Resolve RunSettings from options and environment variables; an
      unknown platform, target, theme or log level is a usage error
    - Apply the log level to the robo_mobile_test_kit logger

    Config attributes created:
    - config._robo_settings: RunSettings resolved from options and env
    - config._robo_features: cucumber-JSON features recorded by this process
    - config._robo_last_feature: feature of the previous test (log banners)
    - config._robo_session_started: set by pytest_sessionstart; the report
      is only generated when a session actually ran
    - config._robo_sessionstart_time: Session start datetime (master only)
    """
    config.addinivalue_line(
        "markers", "datafile(name): parametrize the 'row' fixture from data/<name>"
    )

    load_environment()

    try:
        settings = build_run_settings(config)
        logging.getLogger(PACKAGE_LOGGER).setLevel(settings.log_level)
    except ValueError as exc:
        raise pytest.UsageError(str(exc)) from exc

    config._robo_settings = settings
    config._robo_features = []
    config._robo_last_feature = None
    config._robo_session_started = False
    if not _is_worker(config):
        config._robo_sessionstart_time = datetime.now()


# ============================================================================
# HOOK 5: pytest_report_header
# Execution: Early in session (after pytest_configure)
# Purpose: Add run configuration to the top of the console output
# Runs on: Master process only
# ============================================================================


def pytest_report_header(config):
    """
    Add run configuration to pytest console output.

    Shows the plugin version, platform, execution target, suite, parallel
    mode, the device from the resolved capabilities and the services that
    would start the Appium server or BrowserStack session.

    Returns:
        List of strings to display in report header
    """
    if _is_worker(config):
        return
    settings = getattr(config, "_robo_settings", None)
    if settings is None:
        return

    capabilities = get_capabilities(settings)
    services = get_services(settings)
    parallel_status = (
        "Enabled (pytest-xdist)" if settings.parallel else "Disabled (Serial execution)"
    )
    return [
        "",
        "=" * 80,
        f"Robo Mobile Test Kit v{get_version()}",
        "=" * 80,
        f"Platform:       {settings.platform.value}",
        f"Running on:     {settings.target.value}",
        f"Suite:          {settings.suite_name or '-'}",
        f"Parallel Mode:  {parallel_status}",
        f"Device:         {capabilities[0].get('appium:deviceName') or capabilities[0].get('deviceName')}",
        f"Services:       {', '.join(name for name, _ in services)}",
        "=" * 80,
        "",
    ]


# ============================================================================
# HOOK 6: pytest_sessionstart
# Execution: After session object has been created and before collection starts
# Purpose: Clear fragments of earlier runs and reset the download directory
# Runs on: Master process only (before any xdist worker starts)
# ============================================================================


@pytest.hookimpl(tryfirst=True)
def pytest_sessionstart(session):
    """
    Prepare the run directories.

    - Fragment directory: only the *.json files of an earlier run (worker
      fragments, main.json, report.json) are removed; other files stay
    - Download directory: emptied and recreated

    Marks the session as started so pytest_unconfigure knows a report is
    due (no report after `pytest --help` or a usage error).
    """
    config = session.config
    settings = getattr(config, "_robo_settings", None)
    if settings is None:
        return
    config._robo_session_started = True
    if _is_worker(config):
        return

    removed = clear_fragments(settings.json_dir)
    logger.debug(f"Removed {removed} stale JSON file(s) from {settings.json_dir}")
    reset_download_dir(settings.download_dir)


# ============================================================================
# HOOK 7: pytest_generate_tests
# Execution: For each test function during collection
# Purpose: Parametrize tests with CSV/Excel/JSON data rows
# Runs on: Both master and worker processes
# ============================================================================


def pytest_generate_tests(metafunc):
    """
    Parametrize tests that use 'row' with @pytest.mark.datafile("file").

    The data file is read from the data/ directory next to the tests
    directory. Every row becomes one test, so a failing row is reported as
    its own scenario.
    """
    marker = metafunc.definition.get_closest_marker("datafile")
    if not marker or not marker.args:
        return
    if "row" not in metafunc.fixturenames:
        return

    data_file = marker.args[0]
    data_path = Path(metafunc.definition.path).parent.parent / "data" / data_file
    rows = load_test_data(data_path)

    if not rows:
        logger.error(
            f"Failed to load data file '{data_file}' at {data_path}; "
            f"file may not exist, be empty, or have encoding issues"
        )
        pytest.fail(f"Data file '{data_file}' could not be loaded from {data_path}")

    metafunc.parametrize("row", rows)


# ============================================================================
# HOOK 8: pytest_runtest_makereport
# Execution: For each test phase (setup, call, teardown) after phase completes
# Purpose: Capture test results and build the cucumber-JSON scenario
# Runs on: Both master and worker processes
# ============================================================================


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Track each phase and record the finished scenario after teardown.

    Called for each test phase:
    - setup: state on the item is reset, feature/scenario banners are logged
    - call: the test body (pytest-bdd steps are recorded by HOOK 9)
    - teardown: the scenario is built and stored

    Result data collected:
    - status: failed if any phase failed, skipped if the test was skipped,
      passed otherwise
    - duration: setup + call + teardown
    - error message and driver screenshot of the first failing phase
    - start timestamp of the scenario

    The scenario goes through robo_modify_scenario_result and is appended
    under its feature in config._robo_features.
    """
    config = item.config
    if call.when == "setup":
        item._robo_phase_durations = {}
        item._robo_outcome = "passed"
        item._robo_error = ""
        item._robo_screenshot = None
        item._robo_start_time = datetime.now(timezone.utc)
        feature_name, _ = feature_for_item(item)
        if config._robo_last_feature != feature_name:
            config._robo_last_feature = feature_name
            logger.info("=" * 70)
            logger.info(f"FEATURE to be executed is: {feature_name}")
        logger.info("-" * 70)
        logger.info(f"SCENARIO to be executed is: {scenario_name_for_item(item)}")

    item._robo_phase_durations[call.when] = getattr(call, "duration", 0)

    outcome = yield
    report = outcome.get_result()

    if report.failed:
        if item._robo_outcome != "failed":
            item._robo_error = str(report.longrepr) if report.longrepr else ""
            item._robo_screenshot = capture_screenshot(item)
        item._robo_outcome = "failed"
    elif report.skipped and item._robo_outcome == "passed":
        item._robo_outcome = "skipped"

    if call.when != "teardown":
        return

    scenario = build_scenario_result(item)
    test_data = item.funcargs.get("row", {}) if "row" in item.fixturenames else {}
    try:
        modified = config.hook.robo_modify_scenario_result(
            scenario_result=scenario, test_data=test_data
        )
        if isinstance(modified, dict):
            scenario = modified
        elif modified is not None:
            logger.warning(
                f"robo_modify_scenario_result returned {type(modified).__name__} "
                f"instead of dict, ignoring result for test {item.nodeid}"
            )
    except Exception as e:
        logger.error(
            f"Error calling robo_modify_scenario_result for test {item.nodeid}: {e}",
            exc_info=True,
        )

    feature_name, uri = feature_for_item(item)
    add_scenario_to_features(config._robo_features, feature_name, uri, scenario)
    logger.info(scenario_audit_line(scenario))
    logger.info("-" * 70)


# ============================================================================
# HOOK 9: pytest-bdd step recording
# Execution: Around every Gherkin step of a pytest-bdd scenario (call phase)
# Purpose: Record real steps instead of the single synthetic test step
# Runs on: Whichever process runs the test; ignored without pytest-bdd
# ============================================================================


@pytest.hookimpl(optionalhook=True)
def pytest_bdd_before_scenario(request, feature, scenario):
    """Start an empty step list for the scenario about to run."""
    request.node._robo_steps = []


@pytest.hookimpl(optionalhook=True)
def pytest_bdd_before_step(request, feature, scenario, step, step_func):
    request.node._robo_step_started = time.perf_counter()


def _record_step(request, step, status, error_message=""):
    started = getattr(request.node, "_robo_step_started", None)
    elapsed = time.perf_counter() - started if started is not None else 0
    result = {"status": status, "duration": max(int(elapsed * 1_000_000_000), 0)}
    if error_message:
        result["error_message"] = error_message
    if not hasattr(request.node, "_robo_steps"):
        request.node._robo_steps = []
    request.node._robo_steps.append(
        {"keyword": f"{str(step.keyword).strip()} ", "name": step.name, "result": result}
    )


@pytest.hookimpl(optionalhook=True)
def pytest_bdd_after_step(request, feature, scenario, step, step_func, step_func_args):
    """Record a passed step with its duration."""
    _record_step(request, step, "passed")


@pytest.hookimpl(optionalhook=True)
def pytest_bdd_step_error(
    request, feature, scenario, step, step_func, step_func_args, exception
):
    """
    Record the failing step with the exception as its error message.

    Steps after it never run, so they are absent from the scenario; the
    driver screenshot is attached to this step after teardown.
    """
    _record_step(request, step, "failed", str(exception))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def row(request):
    """One data row (dict of strings) from the file named by @pytest.mark.datafile."""
    return request.param


@pytest.fixture(scope="session")
def run_settings(pytestconfig):
    """RunSettings resolved for this run (report and download directories, platform, ...)."""
    return pytestconfig._robo_settings


@pytest.fixture(autouse=True)
def _robo_reset_app(request):
    """
    Reset the app under test after every test that uses a 'driver' fixture.

    The consuming project provides the driver; nothing happens without one
    or without a configured app id.
    """
    settings = getattr(request.config, "_robo_settings", None)
    driver = None
    if settings is not None and settings.app_id and "driver" in request.fixturenames:
        driver = request.getfixturevalue("driver")

    yield

    if driver is not None:
        reset_mobile_app(driver, settings.app_id, settings.platform)


# ============================================================================
# HOOK 10: pytest_sessionfinish
# Execution: After all tests of this process have run
# Purpose: Persist the scenarios recorded by this process
# Runs on: Both master and worker processes
# ============================================================================


def pytest_sessionfinish(session, exitstatus):
    """
    Write the scenarios recorded by this process as one fragment.

    Fragment names:
    - <json_dir>/gw0.json, gw1.json, ... on xdist workers
    - <json_dir>/main.json on the controlling process

    Workers finish before the controlling process, so every worker fragment
    is on disk when HOOK 11 and HOOK 12 read the directory. The write is
    atomic; a reader never sees half a fragment.
    """
    config = session.config
    settings = getattr(config, "_robo_settings", None)
    if settings is None:
        return
    fragment = Path(settings.json_dir) / _fragment_name(config)
    write_json_atomic(fragment, config._robo_features)
    logger.debug(f"Wrote {len(config._robo_features)} feature(s) to {fragment}")


# ============================================================================
# HOOK 11: pytest_terminal_summary
# Execution: After all tests complete, before pytest_unconfigure
# Purpose: Per-feature scenario counts at the bottom of the console output
# Runs on: Master process only
# ============================================================================


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """
    Print a per-feature Total / Passed / Failed / Skipped / Pending table.

    The counts come from all fragments with duplicates dropped, so they
    match the HTML report. A fragment that cannot be read is reported in
    one line; HOOK 12 reports the same failure with its stage.
    """
    if _is_worker(config):
        return
    settings = getattr(config, "_robo_settings", None)
    if settings is None:
        return

    try:
        features = collect_fragments(settings.json_dir, exclude=settings.canonical_json)
    except ReportError as e:
        terminalreporter.write_line(f"Robo Reporter: {e}")
        return
    if not features:
        return

    terminalreporter.ensure_newline()
    terminalreporter.section("Robo Reporter Summary", sep="=")
    print_results_summary(
        deduplicate_scenarios(features), write_line=terminalreporter.write_line
    )


# ============================================================================
# HOOK 12: pytest_unconfigure
# Execution: Very last - after the session and terminal summary
# Purpose: Consolidate fragments and generate the HTML report
# Runs on: Master process only
# ============================================================================


def pytest_unconfigure(config):
    """
    Consolidate fragments and generate the HTML report.

    Process:
    1. Collect every fragment into <json_dir>/report.json
    2. Drop duplicate scenarios (first occurrence wins)
    3. Render <report_dir>/<suite>-<timestamp>.html
    4. Call robo_html_content_ready, then open the report when requested

    Report generation never changes the exit status of the test run: a failed
    stage is logged and printed with its stage name. Nothing happens when no
    session ran (`pytest --help`, usage errors).
    """
    if _is_worker(config):
        return
    settings = getattr(config, "_robo_settings", None)
    if settings is None or not getattr(config, "_robo_session_started", False):
        return

    try:
        result = generate_report(settings, settings.report_metadata())
    except ReportError as e:
        message = describe_report_failure(e)
        logger.error(message, exc_info=True)
        print(f"\n[ERROR] {message}", flush=True)
        return
    except Exception as e:
        logger.error(f"Failed to generate HTML report: {e}", exc_info=True)
        print(f"\n[ERROR] Failed to generate HTML report: {e}", flush=True)
        return

    print(f"\nHTML report generated: {result['report_path']}", flush=True)

    try:
        config.hook.robo_html_content_ready(
            config=config,
            html_content=result["html_content"],
            report_path=result["report_path"],
        )
    except Exception as hook_error:
        logger.warning(f"Hook robo_html_content_ready failed: {hook_error}", exc_info=True)

    if settings.open_report:
        open_report(result["report_path"])
