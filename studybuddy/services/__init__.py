"""Request-level services used by the API routers."""

from studybuddy.services.chat_service import ChatService, build_system_prompt, validate_messages
from studybuddy.services.insights_service import InsightsService
from studybuddy.services.report_service import (
    ReportIngestionService,
    ReportOutcome,
    ReportSubmission,
)

__all__ = [
    "ChatService",
    "InsightsService",
    "ReportIngestionService",
    "ReportOutcome",
    "ReportSubmission",
    "build_system_prompt",
    "validate_messages",
]
