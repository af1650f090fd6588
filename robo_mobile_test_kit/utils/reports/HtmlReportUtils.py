import base64
import binascii
import json
import logging
import os
import warnings
from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from .errors import EmptyInputWarning, RenderError
from .JsonReportUtils import scenario_duration_nanos, scenario_status, step_status


logger = logging.getLogger(__name__)
logger.propagate = True

SCENARIO_STATUSES = ("passed", "failed", "pending", "skipped")
STEP_STATUSES = ("passed", "failed", "pending", "skipped", "undefined", "ambiguous")


def report_timestamp(now=None):
    """ISO-like timestamp safe for filenames, e.g. 2024-01-01T00-00-00."""
    now = now or datetime.now()
    return now.strftime("%Y-%m-%dT%H:%M:%S").replace(":", "-")


def build_report_path(report_dir, suite_name, timestamp):
    """
    Build the HTML report path for a run.

    Suite runs are named ``<suite>-<timestamp>.html`` so they stay identifiable,
    every other run is named after the timestamp alone.
    """
    if isinstance(timestamp, datetime):
        timestamp = report_timestamp(timestamp)
    timestamp = str(timestamp).replace(":", "-")
    if suite_name:
        file_name = f"{suite_name}-{timestamp}.html"
    else:
        file_name = f"{timestamp}.html"
    return Path(report_dir) / file_name


def format_duration_nanos(nanos):
    """Format a nanosecond duration as HH:MM:SS.mmm."""
    try:
        total_ms = int(nanos) // 1_000_000
    except (TypeError, ValueError):
        return "-"
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02}:{minutes:02}:{seconds:02}.{millis:03}"


def load_report_json(json_file):
    """
    Load the consolidated report, tolerating a missing or bad file.

    A missing, empty, malformed or non-array file yields an empty result set
    and an EmptyInputWarning instead of an error.
    """
    reason = None
    content = []
    try:
        raw = Path(json_file).read_text(encoding="utf-8")
    except FileNotFoundError:
        reason = "not found"
    except OSError as exc:
        reason = f"unreadable ({exc})"
    else:
        if not raw.strip():
            reason = "empty"
        else:
            try:
                content = json.loads(raw)
            except json.JSONDecodeError as exc:
                reason = f"not valid JSON ({exc})"
            else:
                if not isinstance(content, list):
                    reason = "not a JSON array"

    if reason is not None:
        message = f"Report JSON {json_file} is {reason}; rendering an empty report"
        logger.warning(message)
        warnings.warn(message, EmptyInputWarning, stacklevel=2)
        return []
    return content


def get_html_template():
    """
    Returns the Jinja2 template object for the HTML report.
    A project-level template under ./templates/html_report wins over the packaged one.
    """
    source_template_dir = Path.cwd() / "templates" / "html_report"
    source_template_file = source_template_dir / "html_template.html"

    if source_template_file.exists():
        template_dir = str(source_template_dir)
    else:
        package_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
        template_dir = os.path.join(package_root, "templates", "html_report")

    env = Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=select_autoescape(["html"]),
    )
    env.globals["format_duration"] = format_duration_nanos
    return env.get_template("html_template.html")


def _embedding_mime_type(embedding):
    mime_type = embedding.get("mime_type")
    if not mime_type and isinstance(embedding.get("media"), dict):
        mime_type = embedding["media"].get("type")
    return mime_type or ""


class ScreenshotWriter:
    """Turns step image embeddings into <img> sources, inline or stored on disk."""

    def __init__(self, report_path, screenshots_dir=None):
        self.report_path = Path(report_path)
        self.screenshots_dir = Path(screenshots_dir) if screenshots_dir else None
        self.count = 0

    def source_for(self, embedding):
        mime_type = _embedding_mime_type(embedding)
        data = embedding.get("data") or ""
        if not mime_type.startswith("image/") or not data:
            return None
        if self.screenshots_dir is None:
            return f"data:{mime_type};base64,{data}"

        try:
            image_bytes = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Skipping screenshot with invalid base64 payload")
            return None

        self.count += 1
        extension = mime_type.split("/", 1)[1].split("+", 1)[0] or "png"
        target = self.screenshots_dir / f"{self.report_path.stem}-{self.count}.{extension}"
        try:
            self.screenshots_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(image_bytes)
        except OSError as exc:
            raise RenderError(f"Could not store screenshot {target}: {exc}") from exc
        return Path(os.path.relpath(target, self.report_path.parent)).as_posix()


def summarize_features(features, screenshots=None):
    """
    Build the template view of the result set: per-feature and overall counts.
    """
    totals = {
        "features": len(features),
        "features_passed": 0,
        "features_failed": 0,
        "scenarios": 0,
        "steps": 0,
        "duration": 0,
    }
    for status in SCENARIO_STATUSES:
        totals[f"scenarios_{status}"] = 0
    for status in STEP_STATUSES:
        totals[f"steps_{status}"] = 0

    feature_views = []
    for feature in features:
        counts = {status: 0 for status in SCENARIO_STATUSES}
        scenario_views = []
        feature_duration = 0
        for scenario in feature.get("elements") or []:
            status = scenario_status(scenario)
            duration = scenario_duration_nanos(scenario)
            feature_duration += duration
            counts[status] += 1

            step_views = []
            for step in scenario.get("steps") or []:
                s_status = step_status(step)
                if s_status in STEP_STATUSES:
                    totals[f"steps_{s_status}"] += 1
                totals["steps"] += 1
                images = []
                if screenshots is not None and s_status in ("failed", "ambiguous"):
                    for embedding in step.get("embeddings") or []:
                        source = screenshots.source_for(embedding)
                        if source:
                            images.append(source)
                result = step.get("result") or {}
                step_views.append(
                    {
                        "keyword": str(step.get("keyword", "")).strip(),
                        "name": step.get("name", ""),
                        "status": s_status,
                        "duration": result.get("duration") or 0,
                        "error_message": result.get("error_message", ""),
                        "screenshots": images,
                    }
                )

            scenario_views.append(
                {
                    "name": scenario.get("name", ""),
                    "status": status,
                    "duration": duration,
                    "start_timestamp": scenario.get("start_timestamp", ""),
                    "tags": [t.get("name", "") for t in scenario.get("tags") or [] if isinstance(t, dict)],
                    "steps": step_views,
                }
            )

        total = sum(counts.values())
        feature_status = "failed" if counts["failed"] else "passed"
        totals[f"features_{feature_status}"] += 1
        totals["scenarios"] += total
        totals["duration"] += feature_duration
        for status in SCENARIO_STATUSES:
            totals[f"scenarios_{status}"] += counts[status]

        feature_views.append(
            {
                "name": feature.get("name", ""),
                "uri": feature.get("uri", ""),
                "status": feature_status,
                "total": total,
                "counts": counts,
                "duration": feature_duration,
                "scenarios": scenario_views,
            }
        )

    return {"totals": totals, "features": feature_views}


def render_html_report(json_file, output_path, metadata, settings):
    """
    Render the consolidated JSON into the HTML report at ``output_path``.

    Returns:
        Dictionary with html_content and report_path

    Raises:
        RenderError: the report (or a stored screenshot) could not be written
    """
    output_path = Path(output_path)
    features = load_report_json(json_file)

    screenshots = ScreenshotWriter(
        output_path,
        screenshots_dir=settings.screenshots_dir if settings.store_screenshots else None,
    )
    view = summarize_features(features, screenshots=screenshots)

    try:
        template = get_html_template()
        html_content = template.render(
            report_title=settings.brand_title,
            theme=settings.theme,
            metadata=metadata.as_dict(),
            totals=view["totals"],
            features=view["features"],
            generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )
    except TemplateError as exc:
        raise RenderError(f"Could not render HTML report: {exc}") from exc

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(html_content, encoding="utf-8")
    except OSError as exc:
        raise RenderError(f"Could not write HTML report {output_path}: {exc}") from exc

    logger.info(
        f"HTML report generated: {output_path.absolute()} "
        f"({view['totals']['scenarios']} scenario(s))"
    )
    return {
        "html_content": html_content,
        "report_path": str(output_path.absolute()),
    }
