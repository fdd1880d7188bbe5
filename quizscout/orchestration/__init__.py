"""
Job orchestration: index runs fan out into per-venue detail jobs.
"""

from quizscout.orchestration.detail_processor import (
    DetailJobResult,
    DetailOutcome,
    DetailProcessor,
    run_detail_job,
)
from quizscout.orchestration.index_processor import IndexProcessor, IndexRunResult, detail_payload
from quizscout.orchestration.job_tracker import summarize_index_run

__all__ = [
    "DetailJobResult",
    "DetailOutcome",
    "DetailProcessor",
    "IndexProcessor",
    "IndexRunResult",
    "detail_payload",
    "run_detail_job",
    "summarize_index_run",
]
