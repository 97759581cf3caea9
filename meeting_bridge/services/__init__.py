"""External services: assistant gateway and recording-platform bot API."""
from meeting_bridge.services.gateway import GatewayClient
from meeting_bridge.services.recall import RecallClient

__all__ = ["GatewayClient", "RecallClient"]
