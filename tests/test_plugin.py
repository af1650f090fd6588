import json

import pytest

ROBO_ENV_KEYS = (
    "PLATFORM",
    "RUN_ON",
    "SUITE",
    "PARALLEL_EXECUTION",
    "JSON_DIR",
    "REPORT_DIR",
    "REPORT_THEME",
    "STORE_SCREENSHOTS",
    "APP_ID_ANDROID",
    "APP_ID_IOS",
    "APP_ENV",
    "DOWNLOAD_DIR",
    "OPEN_REPORT",
    "LOG_LEVEL",
)

SAMPLE_TESTS = '''
"""Login feature"""
import pytest


def test_valid_login():
    assert True


def test_unregistered_user():
    assert 1 == 2, "alert not shown"


@pytest.mark.skip(reason="not on this build")
def test_products_listing():
    pass
'''


@pytest.fixture(autouse=True)
def clean_robo_env(monkeypatch):
    for key in ROBO_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _html_reports(pytester):
    return sorted((pytester.path / "reports" / "html").glob("*.html"))


def test_run_writes_fragment_canonical_json_and_html(pytester):
    pytester.makepyfile(test_login=SAMPLE_TESTS)

    result = pytester.runpytest("--robo-suite", "smoke")

    result.assert_outcomes(passed=1, failed=1, skipped=1)
    result.stdout.fnmatch_lines(["*Robo Reporter Summary*", "*Login*3*1*1*1*0*", "*HTML report generated:*smoke-*.html"])

    fragment = json.loads((pytester.path / "reports" / "json" / "tmp" / "main.json").read_text())
    canonical = json.loads((pytester.path / "reports" / "json" / "tmp" / "report.json").read_text())
    assert canonical == fragment
    assert [f["name"] for f in canonical] == ["Login feature"]
    assert canonical[0]["uri"] == "test_login.py"

    scenarios = {s["name"]: s for s in canonical[0]["elements"]}
    assert scenarios["test_valid_login"]["steps"][0]["result"]["status"] == "passed"
    assert scenarios["test_unregistered_user"]["steps"][0]["result"]["status"] == "failed"
    assert "alert not shown" in scenarios["test_unregistered_user"]["steps"][0]["result"]["error_message"]
    assert scenarios["test_products_listing"]["steps"][0]["result"]["status"] == "skipped"

    reports = _html_reports(pytester)
    assert len(reports) == 1
    assert reports[0].name.startswith("smoke-")
    assert "Scenario: test_unregistered_user" in reports[0].read_text(encoding="utf-8")


def test_report_name_without_suite(pytester):
    pytester.makepyfile(test_login=SAMPLE_TESTS)

    pytester.runpytest()

    reports = _html_reports(pytester)
    assert len(reports) == 1
    assert reports[0].name[:2] == "20"


def test_stale_fragments_are_removed_at_session_start(pytester):
    stale = pytester.path / "reports" / "json" / "tmp"
    stale.mkdir(parents=True)
    (stale / "gw9.json").write_text("[{broken", encoding="utf-8")
    pytester.makepyfile(test_login=SAMPLE_TESTS)

    result = pytester.runpytest()

    result.stdout.fnmatch_lines(["*HTML report generated:*"])
    assert not (stale / "gw9.json").exists()


def test_malformed_fragment_is_reported_without_changing_exit_status(pytester):
    pytester.makeconftest(
        """
        from pathlib import Path


        def pytest_sessionfinish(session):
            Path("reports/json/tmp/gw1.json").write_text("[{broken", encoding="utf-8")
        """
    )
    pytester.makepyfile(
        """
        def test_ok():
            pass
        """
    )

    result = pytester.runpytest()

    assert result.ret == 0
    result.stdout.fnmatch_lines(["*Report generation failed during collect*gw1.json*"])
    assert not (pytester.path / "reports" / "json" / "tmp" / "report.json").exists()
    assert not (pytester.path / "reports" / "html").exists()


def test_modify_scenario_hook_and_data_rows(pytester):
    pytester.makeconftest(
        """
        import pytest


        @pytest.hookimpl
        def robo_modify_scenario_result(scenario_result, test_data):
            if test_data:
                scenario_result["name"] = test_data["Test Case Name"]
                return scenario_result
        """
    )
    data_dir = pytester.mkdir("data")
    (data_dir / "LoginData.csv").write_text(
        "Test Case Name,Username\nTC-1 valid user,bob@example.com\nTC-2 locked user,alice@example.com\n",
        encoding="utf-8",
    )
    tests_dir = pytester.mkdir("tests")
    (tests_dir / "test_data_login.py").write_text(
        "import pytest\n\n\n"
        "@pytest.mark.datafile('LoginData.csv')\n"
        "def test_login(row):\n"
        "    assert row['Username'].endswith('@example.com')\n",
        encoding="utf-8",
    )

    result = pytester.runpytest("tests")

    result.assert_outcomes(passed=2)
    canonical = json.loads((pytester.path / "reports" / "json" / "tmp" / "report.json").read_text())
    assert [s["name"] for s in canonical[0]["elements"]] == ["TC-1 valid user", "TC-2 locked user"]


def test_html_content_ready_hook(pytester):
    pytester.makeconftest(
        """
        import pytest


        @pytest.hookimpl
        def robo_html_content_ready(config, html_content, report_path):
            with open("hook_called.txt", "w") as f:
                f.write(report_path)
        """
    )
    pytester.makepyfile(
        """
        def test_ok():
            pass
        """
    )

    pytester.runpytest()

    recorded = (pytester.path / "hook_called.txt").read_text()
    assert recorded == str(_html_reports(pytester)[0])


def test_app_reset_and_screenshot_with_driver_fixture(pytester, monkeypatch):
    monkeypatch.setenv("APP_ID_ANDROID", "com.saucelabs.mydemoapp.rn")
    pytester.makeconftest(
        """
        import base64
        import pytest


        class RecordingDriver:
            def terminate_app(self, app_id):
                self._record(f"terminate_app {app_id}")

            def activate_app(self, app_id):
                self._record(f"activate_app {app_id}")

            def get_screenshot_as_base64(self):
                return base64.b64encode(b"png-bytes").decode("ascii")

            def _record(self, line):
                with open("driver_calls.txt", "a") as f:
                    f.write(line + "\\n")


        @pytest.fixture
        def driver():
            return RecordingDriver()
        """
    )
    pytester.makepyfile(
        """
        def test_fails_with_driver(driver):
            assert False
        """
    )

    result = pytester.runpytest()

    result.assert_outcomes(failed=1)
    calls = (pytester.path / "driver_calls.txt").read_text().splitlines()
    assert calls == [
        "terminate_app com.saucelabs.mydemoapp.rn",
        "activate_app com.saucelabs.mydemoapp.rn",
    ]
    canonical = json.loads((pytester.path / "reports" / "json" / "tmp" / "report.json").read_text())
    step = canonical[0]["elements"][0]["steps"][0]
    assert step["embeddings"][0]["mime_type"] == "image/png"
    assert "data:image/png;base64," in _html_reports(pytester)[0].read_text(encoding="utf-8")


def test_invalid_platform_is_a_usage_error(pytester):
    pytester.makepyfile(
        """
        def test_ok():
            pass
        """
    )

    result = pytester.runpytest("--robo-platform", "blackberry")

    assert result.ret == pytest.ExitCode.USAGE_ERROR
    result.stderr.fnmatch_lines(["*Unsupported platform 'blackberry'*"])


def test_custom_fragment_directory_keeps_unrelated_files(pytester):
    (pytester.path / "keep_me.txt").write_text("keep", encoding="utf-8")
    (pytester.path / "stale.json").write_text("[{broken", encoding="utf-8")
    notes = pytester.mkdir("notes")
    (notes / "todo.json").write_text("{}", encoding="utf-8")
    pytester.makepyfile(test_login=SAMPLE_TESTS)

    result = pytester.runpytest("--robo-json-dir", ".")

    result.assert_outcomes(passed=1, failed=1, skipped=1)
    result.stdout.fnmatch_lines(["*HTML report generated:*"])
    assert (pytester.path / "keep_me.txt").read_text(encoding="utf-8") == "keep"
    assert (pytester.path / "test_login.py").exists()
    assert (notes / "todo.json").exists()
    assert not (pytester.path / "stale.json").exists()
    canonical = json.loads((pytester.path / "report.json").read_text())
    assert len(canonical[0]["elements"]) == 3


def test_download_directory_is_reset_and_exposed(pytester):
    downloads = pytester.mkdir("downloads")
    (downloads / "invoice.pdf").write_bytes(b"%PDF")
    pytester.makepyfile(
        """
        def test_download_dir(run_settings):
            assert str(run_settings.download_dir) == "downloads"
            assert list(run_settings.download_dir.iterdir()) == []
        """
    )

    result = pytester.runpytest("--robo-download-dir", "downloads")

    result.assert_outcomes(passed=1)
    assert downloads.is_dir()
    assert not (downloads / "invoice.pdf").exists()


def test_default_download_directory_is_created(pytester):
    pytester.makepyfile(
        """
        def test_ok():
            pass
        """
    )

    pytester.runpytest()

    assert (pytester.path / "tempDownloads").is_dir()


def test_scenarios_carry_start_timestamp(pytester):
    pytester.makepyfile(test_login=SAMPLE_TESTS)

    pytester.runpytest()

    canonical = json.loads((pytester.path / "reports" / "json" / "tmp" / "report.json").read_text())
    timestamps = [s["start_timestamp"] for s in canonical[0]["elements"]]
    assert len(timestamps) == 3
    assert all(t.startswith("20") and t.endswith("+00:00") for t in timestamps)


def test_help_does_not_generate_a_report(pytester):
    result = pytester.runpytest("--help")

    assert result.ret == 0
    assert "[ERROR]" not in result.stdout.str()
    assert "HTML report generated" not in result.stdout.str()
    assert not (pytester.path / "reports").exists()


def test_parallel_workers_write_fragments_consolidated_by_controller(pytester, monkeypatch):
    pytest.importorskip("xdist")
    monkeypatch.setenv("PARALLEL_EXECUTION", "Y")
    pytester.makepyfile(
        test_login=SAMPLE_TESTS,
        test_cart='''
        """Cart feature"""


        def test_add_to_cart():
            pass


        def test_remove_from_cart():
            pass
        ''',
    )

    result = pytester.runpytest("-n", "2", "--robo-suite", "parallel")

    result.assert_outcomes(passed=3, failed=1, skipped=1)
    json_dir = pytester.path / "reports" / "json" / "tmp"
    assert (json_dir / "gw0.json").exists()
    assert (json_dir / "gw1.json").exists()

    canonical = json.loads((json_dir / "report.json").read_text())
    recorded = sorted(s["name"] for f in canonical for s in f["elements"])
    assert recorded == [
        "test_add_to_cart",
        "test_products_listing",
        "test_remove_from_cart",
        "test_unregistered_user",
        "test_valid_login",
    ]
    assert {f["name"] for f in canonical} == {"Login feature", "Cart feature"}

    reports = _html_reports(pytester)
    assert len(reports) == 1
    assert reports[0].name.startswith("parallel-")


def test_parallel_disabled_runs_serially_despite_n_option(pytester, monkeypatch):
    pytest.importorskip("xdist")
    monkeypatch.setenv("PARALLEL_EXECUTION", "N")
    pytester.makepyfile(test_login=SAMPLE_TESTS)

    result = pytester.runpytest("-n", "2")

    result.assert_outcomes(passed=1, failed=1, skipped=1)
    json_dir = pytester.path / "reports" / "json" / "tmp"
    assert list(json_dir.glob("gw*.json")) == []
    main = json.loads((json_dir / "main.json").read_text())
    assert len(main[0]["elements"]) == 3


LOGIN_FEATURE = """
Feature: Login
    Scenario: Valid login
        Given the app is open
        When I log in with valid credentials
        Then I see the products page

    Scenario: Locked user
        Given the app is open
        Then I see a locked out error
"""

LOGIN_STEPS = """
from pytest_bdd import given, scenarios, then, when

scenarios("login.feature")


@given("the app is open")
def app_open():
    pass


@when("I log in with valid credentials")
def log_in():
    pass


@then("I see the products page")
def products_page():
    pass


@then("I see a locked out error")
def locked_out():
    raise AssertionError("user is locked out")
"""


def test_bdd_scenarios_record_gherkin_steps(pytester):
    pytest.importorskip("pytest_bdd")
    pytester.makefile(".feature", login=LOGIN_FEATURE)
    pytester.makepyfile(test_login_steps=LOGIN_STEPS)

    result = pytester.runpytest()

    result.assert_outcomes(passed=1, failed=1)
    canonical = json.loads((pytester.path / "reports" / "json" / "tmp" / "report.json").read_text())
    assert [f["name"] for f in canonical] == ["Login"]
    assert canonical[0]["uri"].endswith("login.feature")

    scenarios = {s["name"]: s for s in canonical[0]["elements"]}
    assert set(scenarios) == {"Valid login", "Locked user"}

    valid = [(s["keyword"].strip(), s["name"], s["result"]["status"]) for s in scenarios["Valid login"]["steps"]]
    assert valid == [
        ("Given", "the app is open", "passed"),
        ("When", "I log in with valid credentials", "passed"),
        ("Then", "I see the products page", "passed"),
    ]

    locked = scenarios["Locked user"]["steps"]
    assert [(s["keyword"].strip(), s["result"]["status"]) for s in locked] == [("Given", "passed"), ("Then", "failed")]
    assert "user is locked out" in locked[-1]["result"]["error_message"]
    assert "Scenario: Locked user" in _html_reports(pytester)[0].read_text(encoding="utf-8")
