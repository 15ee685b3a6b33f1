from __future__ import annotations

from assessment_api.services.attempts import AttemptService, AutoGradeResult
from assessment_api.services.reports import ReportService, ScoreReport

__all__ = ["AttemptService", "AutoGradeResult", "ReportService", "ScoreReport"]
