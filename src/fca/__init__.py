"""
fca — unofficial Messenger client with classified responses, session
validation and reliable realtime edits.
"""

from .classifier import ResponseClassifier
from .client import FcaClient
from .config import Options
from .pending import EditState, PendingEdits
from .realtime import RealtimeChannel, create_mqtt_client
from .safety import AccessPolicy, RiskStore, RiskTier, SafetyAdvisor
from .session import Session
from .types import EditSettings, SigningTokens
from .validator import validate_session

__all__ = [
    "AccessPolicy",
    "EditSettings",
    "EditState",
    "FcaClient",
    "Options",
    "PendingEdits",
    "RealtimeChannel",
    "ResponseClassifier",
    "RiskStore",
    "RiskTier",
    "SafetyAdvisor",
    "Session",
    "SigningTokens",
    "create_mqtt_client",
    "validate_session",
]
__version__ = "0.1.0"
