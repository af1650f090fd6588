from .errors import CollectorError, EmptyInputWarning, RenderError, ReportError
from .HtmlReportUtils import build_report_path, render_html_report
from .JsonReportUtils import collect_fragments, consolidate, deduplicate_scenarios

__all__ = [
    "CollectorError",
    "EmptyInputWarning",
    "RenderError",
    "ReportError",
    "build_report_path",
    "render_html_report",
    "collect_fragments",
    "consolidate",
    "deduplicate_scenarios",
]
