# Report generation utilities and helpers
import logging
import os
import shutil
import webbrowser
import zipfile
from importlib import metadata
from pathlib import Path
from typing import Any

import pandas as pd

from .reports.errors import ReportError
from .reports.HtmlReportUtils import (
    build_report_path,
    format_duration_nanos,
    render_html_report,
    report_timestamp,
)
from .reports.JsonReportUtils import (
    consolidate,
    deduplicate_report_file,
    scenario_duration_nanos,
    scenario_status,
)


logger = logging.getLogger(__name__)
logger.propagate = True

NANOS_PER_SECOND = 1_000_000_000
IGNORED_MARKERS = {
    "parametrize",
    "usefixtures",
    "filterwarnings",
    "skip",
    "skipif",
    "xfail",
    "datafile",
    "pytest_bdd_scenario",
}


def get_env(key: str, default: Any = "") -> Any:
    value = os.getenv(key)
    if value is not None:
        value = value.strip()
        return value if value else default
    return default


def get_version() -> str:
    try:
        return metadata.version("robo-mobile-test-kit")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def load_test_data(path: Path):
    """Load test data rows from CSV, Excel or JSON-records file using pandas.

    Supports multiple file formats and encodings:
    - CSV files with utf-8-sig, latin-1, or utf-8 encoding
    - Excel workbooks (.xlsx)
    - JSON arrays of objects (.json)

    Returns a list of dict rows suitable for pytest parametrization.
    """

    if not os.path.exists(path):
        logger.error(f"Data file not found: {path}")
        return []

    try:
        if zipfile.is_zipfile(path):
            df = pd.read_excel(path, engine="openpyxl", dtype=str, keep_default_na=False)
        elif str(path).lower().endswith(".json"):
            df = pd.read_json(path, orient="records", dtype=False)
            df = df.fillna("").astype(str)
        else:
            df = None
            for enc in ("utf-8-sig", "latin-1", "utf-8"):
                try:
                    df = pd.read_csv(path, encoding=enc, dtype=str, keep_default_na=False)
                    break
                except UnicodeDecodeError:
                    df = None
            if df is None:
                logger.error(f"Could not load CSV file {path} with any supported encoding")
                return []
        df = df.fillna("")

        return df.to_dict(orient="records")
    except Exception as exc:
        logger.error(f"Error loading data file {path}: {exc}", exc_info=True)
        return []


# ============================================================================
# Scenario building (pytest item -> cucumber-JSON scenario)
# ============================================================================


def _bdd_scenario(item):
    return getattr(getattr(item, "obj", None), "__scenario__", None)


def scenario_name_for_item(item):
    scenario = _bdd_scenario(item)
    name = getattr(scenario, "name", None)
    if not name:
        return item.name
    # Outline examples share the scenario name; keep the parameter id apart
    if "[" in item.name:
        name += item.name[item.name.index("["):]
    return name


def feature_for_item(item):
    """
    Resolve (name, uri) of the feature an item belongs to.

    pytest-bdd scenarios report their Gherkin feature, plain tests report the
    first docstring line of their module (or the module file name).
    """
    scenario = _bdd_scenario(item)
    if scenario is not None and getattr(scenario, "feature", None) is not None:
        feature = scenario.feature
        uri = getattr(feature, "rel_filename", None) or getattr(feature, "filename", "")
        return feature.name, str(uri)

    uri = item.nodeid.split("::")[0]
    module = getattr(item, "module", None)
    doc = (getattr(module, "__doc__", None) or "").strip()
    name = doc.splitlines()[0].strip() if doc else Path(uri).stem
    return name, uri


def _nanos(seconds):
    return max(int(round((seconds or 0) * NANOS_PER_SECOND)), 0)


def build_scenario_result(item):
    """
    Build the cucumber-JSON scenario for a finished item.

    Uses the Gherkin steps recorded by the pytest-bdd hooks when present,
    otherwise a single step standing for the test body.
    """
    outcome = getattr(item, "_robo_outcome", "passed")
    error_message = getattr(item, "_robo_error", "")
    screenshot = getattr(item, "_robo_screenshot", None)
    durations = getattr(item, "_robo_phase_durations", {})

    name = scenario_name_for_item(item)
    steps = [dict(step) for step in getattr(item, "_robo_steps", [])]
    if not steps:
        result = {"status": outcome, "duration": _nanos(sum(durations.values()))}
        if error_message:
            result["error_message"] = error_message
        steps = [{"keyword": "Test ", "name": name, "result": result}]
    elif outcome == "failed" and not any(
        (s.get("result") or {}).get("status") == "failed" for s in steps
    ):
        # Failure outside of any step
        steps.append(
            {
                "keyword": "After ",
                "name": "fixture setup or teardown",
                "result": {"status": "failed", "duration": 0, "error_message": error_message},
            }
        )

    if screenshot:
        for step in reversed(steps):
            if (step.get("result") or {}).get("status") == "failed":
                step.setdefault("embeddings", []).append(
                    {"mime_type": "image/png", "data": screenshot}
                )
                break

    tags = [
        {"name": f"@{marker.name}"}
        for marker in item.iter_markers()
        if marker.name not in IGNORED_MARKERS
    ]
    scenario = {
        "keyword": "Scenario",
        "type": "scenario",
        "id": item.nodeid,
        "name": name,
        "tags": tags,
        "steps": steps,
    }
    started = getattr(item, "_robo_start_time", None)
    if started is not None:
        scenario["start_timestamp"] = started.isoformat(timespec="milliseconds")
    return scenario


def capture_screenshot(item):
    """Take a base64 screenshot with the item's driver fixture, if it has one."""
    driver = item.funcargs.get("driver") if hasattr(item, "funcargs") else None
    if driver is None or not hasattr(driver, "get_screenshot_as_base64"):
        return None
    try:
        return driver.get_screenshot_as_base64()
    except Exception as exc:
        logger.warning(f"Could not capture screenshot for {item.nodeid}: {exc}", exc_info=True)
        return None


def add_scenario_to_features(features, feature_name, uri, scenario):
    """Append a scenario under its feature, creating the feature on first use."""
    for feature in features:
        if feature["uri"] == uri and feature["name"] == feature_name:
            feature["elements"].append(scenario)
            return feature
    feature = {
        "keyword": "Feature",
        "id": uri,
        "name": feature_name,
        "uri": uri,
        "elements": [scenario],
    }
    features.append(feature)
    return feature


def print_results_summary(features, write_line=print):
    """Write a per-feature scenario summary line by line."""
    header = "{:<40} {:>7} {:>7} {:>7} {:>8} {:>8}".format(
        "Feature", "Total", "Passed", "Failed", "Skipped", "Pending"
    )
    sep = "-" * len(header)
    write_line(header)
    write_line(sep)
    for feature in features:
        statuses = [scenario_status(s) for s in feature.get("elements") or []]
        write_line(
            "{:<40} {:>7} {:>7} {:>7} {:>8} {:>8}".format(
                str(feature.get("name", ""))[:40],
                len(statuses),
                statuses.count("passed"),
                statuses.count("failed"),
                statuses.count("skipped"),
                statuses.count("pending"),
            )
        )
    write_line(sep)


def scenario_audit_line(scenario):
    return (
        f"SCENARIO: {scenario.get('name', '')}, STATUS: {scenario_status(scenario)}, "
        f"EXECUTION DURATION: {format_duration_nanos(scenario_duration_nanos(scenario))}"
    )


# ============================================================================
# Report pipeline
# ============================================================================


def generate_report(settings, report_metadata, now=None):
    """
    Consolidate fragments, drop duplicate scenarios, render the HTML report.

    The three steps run once, in order. A collect or deduplicate failure
    stops the sequence and propagates; nothing is rendered from a partial
    result set.

    Args:
        settings: RunSettings for the run
        report_metadata: ReportMetadata shown in the report header
        now: Optional datetime used for the report file name

    Returns:
        Dictionary with html_content and report_path

    Raises:
        ReportError: CollectorError or RenderError with the failing stage
    """
    json_file = settings.canonical_json
    report_path = build_report_path(
        settings.report_dir, settings.suite_name, report_timestamp(now)
    )

    consolidated = consolidate(settings.json_dir, json_file)
    logger.debug(f"Consolidated {len(consolidated)} feature(s) into {json_file}")

    deduplicated = deduplicate_report_file(json_file)
    removed = sum(len(f.get("elements") or []) for f in consolidated) - sum(
        len(f["elements"]) for f in deduplicated
    )
    if removed:
        logger.info(f"Removed {removed} duplicate scenario(s)")

    return render_html_report(json_file, report_path, report_metadata, settings)


def describe_report_failure(error):
    stage = getattr(error, "stage", "report") if isinstance(error, ReportError) else "report"
    return f"Report generation failed during {stage}: {error}"


# ============================================================================
# Run directories and report launch
# ============================================================================


def reset_download_dir(download_dir):
    """
    Empty the shared download directory before a run, creating it if needed.

    The working directory and its parents are never removed; for those only a
    warning is logged.

    Returns:
        True if the directory was reset
    """
    download_dir = Path(download_dir)
    resolved = download_dir.resolve()
    cwd = Path.cwd().resolve()
    if resolved == cwd or resolved in cwd.parents:
        logger.warning(f"Refusing to reset download directory {download_dir}: it contains the working directory")
        return False
    if resolved.is_dir():
        shutil.rmtree(resolved)
    elif resolved.exists():
        logger.warning(f"Download directory {download_dir} is a file, leaving it in place")
        return False
    resolved.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Download directory reset: {download_dir}")
    return True


def open_report(report_path):
    """Open the generated HTML report in the default browser."""
    url = Path(report_path).absolute().as_uri()
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        logger.warning(f"Could not open {url} in a browser: {exc}")
        return False
    if not opened:
        logger.warning(f"No browser available to open {url}")
    return bool(opened)
