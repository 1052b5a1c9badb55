"""Session layer — readiness detection, brand patching and orchestration."""

from anton.session.detect import ReadinessDetector, ReadinessReason
from anton.session.orchestrator import RelayMode, Session, SessionOrchestrator
from anton.session.patcher import BrandPatcher

__all__ = [
    "BrandPatcher",
    "ReadinessDetector",
    "ReadinessReason",
    "RelayMode",
    "Session",
    "SessionOrchestrator",
]
