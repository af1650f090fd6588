"""
Error types raised while building the consolidated report.
"""


class ReportError(Exception):
    """Base error for the report pipeline; ``stage`` names the failing step."""

    stage = "report"

    def __init__(self, message, stage=None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class CollectorError(ReportError):
    """Fragment directory missing or a fragment / canonical file is malformed."""

    stage = "collect"


class RenderError(ReportError):
    """HTML report could not be written."""

    stage = "render"


class EmptyInputWarning(UserWarning):
    """The consolidated JSON was missing or empty; an empty report is rendered."""
