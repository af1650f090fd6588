import json
import logging
import os
import tempfile
from pathlib import Path

from .errors import CollectorError


logger = logging.getLogger(__name__)
logger.propagate = True

CANONICAL_REPORT_NAME = "report.json"


def write_json_atomic(path, data):
    """
    Write ``data`` as indented JSON to ``path`` with atomic replace semantics.

    The content goes to a temporary file in the target directory first and is
    moved over the target with os.replace, so readers never see a partial file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def clear_fragments(fragment_dir):
    """
    Remove the JSON files of an earlier run from ``fragment_dir``.

    Only top-level ``*.json`` files go (fragments and the canonical report);
    anything else in the directory is left alone. The directory is created
    when missing.

    Returns:
        Number of files removed
    """
    fragment_dir = Path(fragment_dir)
    fragment_dir.mkdir(parents=True, exist_ok=True)
    removed = 0
    for stale in fragment_dir.glob("*.json"):
        if stale.is_file():
            stale.unlink()
            removed += 1
    return removed


def discover_fragments(fragment_dir, exclude=None):
    """Return fragment files in the directory, sorted by filename."""
    fragment_dir = Path(fragment_dir)
    excluded = Path(exclude).resolve() if exclude is not None else None
    fragments = []
    for candidate in sorted(fragment_dir.glob("*.json")):
        if not candidate.is_file():
            continue
        if excluded is not None and candidate.resolve() == excluded:
            continue
        fragments.append(candidate)
    return fragments


def read_fragment(fragment_path):
    """Read one fragment; it must be a JSON array of feature objects."""
    try:
        with open(fragment_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise CollectorError(
            f"Fragment {fragment_path} is not well-formed JSON: {exc}"
        ) from exc
    except OSError as exc:
        raise CollectorError(f"Could not read fragment {fragment_path}: {exc}") from exc

    if not isinstance(data, list):
        raise CollectorError(
            f"Fragment {fragment_path} must contain a JSON array, "
            f"got {type(data).__name__}"
        )
    problem = _feature_shape_problem(data)
    if problem:
        raise CollectorError(f"Fragment {fragment_path} is not a feature list: {problem}")
    return data


def _feature_shape_problem(features):
    """Describe the first entry that is not a cucumber-JSON feature, if any."""
    for i, feature in enumerate(features):
        if not isinstance(feature, dict):
            return f"feature {i} is {type(feature).__name__}, expected object"
        elements = feature.get("elements")
        if elements is None:
            continue
        if not isinstance(elements, list):
            return f"feature {i} 'elements' is {type(elements).__name__}, expected array"
        for j, element in enumerate(elements):
            if not isinstance(element, dict):
                return f"feature {i} element {j} is {type(element).__name__}, expected object"
            steps = element.get("steps")
            if steps is None:
                continue
            if not isinstance(steps, list) or not all(isinstance(s, dict) for s in steps):
                return f"feature {i} element {j} 'steps' must be an array of objects"
    return None


def collect_fragments(fragment_dir, exclude=None):
    """
    Merge every partial result fragment in ``fragment_dir`` into one list.

    Features keep fragment order, then their order inside each fragment.
    A single malformed fragment aborts the whole consolidation.

    Raises:
        CollectorError: directory missing or a fragment is malformed
    """
    fragment_dir = Path(fragment_dir)
    if not fragment_dir.is_dir():
        raise CollectorError(f"Fragment directory not found: {fragment_dir}")

    consolidated = []
    fragments = discover_fragments(fragment_dir, exclude=exclude)
    for fragment_path in fragments:
        features = read_fragment(fragment_path)
        logger.debug(f"Fragment {fragment_path.name}: {len(features)} feature(s)")
        consolidated.extend(features)

    logger.info(
        f"Collected {len(consolidated)} feature(s) from {len(fragments)} fragment(s) "
        f"in {fragment_dir}"
    )
    return consolidated


def consolidate(fragment_dir, output_file):
    """Collect all fragments and write them to the canonical JSON file."""
    consolidated = collect_fragments(fragment_dir, exclude=output_file)
    write_json_atomic(output_file, consolidated)
    return consolidated


def deduplicate_scenarios(features):
    """
    Keep only the first occurrence of each scenario name within every feature.

    The first entry seen wins even when a later one (a retry, an overlapping
    split) carries a different outcome. The input list is left untouched.
    """
    deduplicated = []
    for feature in features:
        unique_elements = []
        seen_names = set()
        for element in feature.get("elements") or []:
            name = element.get("name")
            if name in seen_names:
                logger.debug(
                    f"Dropping duplicate scenario '{name}' in feature "
                    f"'{feature.get('name', '')}'"
                )
                continue
            seen_names.add(name)
            unique_elements.append(element)
        deduplicated.append({**feature, "elements": unique_elements})
    return deduplicated


def deduplicate_report_file(json_file):
    """Deduplicate the canonical JSON file in place."""
    try:
        with open(json_file, "r", encoding="utf-8") as f:
            content = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise CollectorError(
            f"Could not read consolidated report {json_file}: {exc}",
            stage="deduplicate",
        ) from exc

    if not isinstance(content, list):
        raise CollectorError(
            f"Consolidated report {json_file} must contain a JSON array",
            stage="deduplicate",
        )
    problem = _feature_shape_problem(content)
    if problem:
        raise CollectorError(
            f"Consolidated report {json_file} is not a feature list: {problem}",
            stage="deduplicate",
        )

    deduplicated = deduplicate_scenarios(content)
    write_json_atomic(json_file, deduplicated)
    return deduplicated


# ============================================================================
# Scenario helpers (cucumber-JSON layout)
# ============================================================================

FAILED_STEP_STATUSES = ("failed", "ambiguous")
PENDING_STEP_STATUSES = ("pending", "undefined")


def step_status(step):
    return str((step.get("result") or {}).get("status", "passed")).lower()


def normalize_scenario_status(status):
    """Map any cucumber status onto passed / failed / pending / skipped."""
    status = str(status).strip().lower()
    if status in PENDING_STEP_STATUSES:
        return "pending"
    if status in ("passed", "skipped"):
        return status
    # failed, ambiguous and anything unknown
    return "failed"


def scenario_status(scenario):
    """
    Resolve the status of a scenario.

    An explicit ``status`` wins (normalized to the four scenario statuses);
    otherwise failed beats pending beats skipped and a scenario with no steps
    counts as passed.
    """
    explicit = scenario.get("status")
    if explicit:
        return normalize_scenario_status(explicit)

    statuses = [step_status(step) for step in scenario.get("steps") or []]
    if any(s in FAILED_STEP_STATUSES for s in statuses):
        return "failed"
    if any(s in PENDING_STEP_STATUSES for s in statuses):
        return "pending"
    if any(s == "skipped" for s in statuses):
        return "skipped"
    return "passed"


def scenario_duration_nanos(scenario):
    total = 0
    for step in scenario.get("steps") or []:
        duration = (step.get("result") or {}).get("duration") or 0
        try:
            total += max(int(duration), 0)
        except (TypeError, ValueError):
            continue
    return total
