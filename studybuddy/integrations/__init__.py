"""External HTTP integrations: the AI gateway and the StudyBuddy API client."""

from studybuddy.integrations.ai_gateway_client import AIGatewayClient
from studybuddy.integrations.report_client import StudyBuddyClient

__all__ = ["AIGatewayClient", "StudyBuddyClient"]
