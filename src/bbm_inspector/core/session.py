"""
Scan session context for the bad-block map inspector.

A ScanSession holds everything one scan needs: the byte source, the
reporter, the device geometry, the settings and the interactive
collaborators. It is created per run and passed to every stage, so no
state survives between scans.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, TYPE_CHECKING

from bbm_inspector.core.geometry import DeviceGeometry
from bbm_inspector.core.settings import ScanSettings

if TYPE_CHECKING:
    from bbm_inspector.core.byte_cursor import ByteCursor
    from bbm_inspector.analysis.reporter import Reporter

# Module logger
logger = logging.getLogger(__name__)


def decline_retry() -> bool:
    """Confirmation function used when nobody can be asked."""
    return False


@dataclass
class ScanSession:
    """
    Per-run scan context.

    Attributes:
        cursor: Byte source over the image (opened once, read-only)
        reporter: Receives every finding
        geometry: Fixed device geometry
        settings: Scan settings
        confirm_retry: Asked once whether to restart the BBM signature
            search from offset 0 when it ran off the end of the image
        cancel_check: Polled between stages; returning True stops the scan
        session_id: Unique identifier for this session
        created_at: Timestamp when the session was created

    Example:
        >>> with ByteCursor.open("dump.bin") as cursor:
        ...     session = ScanSession(cursor=cursor, reporter=Reporter())
        ...     result = run_scan(session)
    """
    cursor: 'ByteCursor'
    reporter: 'Reporter'
    geometry: DeviceGeometry = field(default_factory=DeviceGeometry)
    settings: ScanSettings = field(default_factory=ScanSettings)
    confirm_retry: Callable[[], bool] = decline_retry
    cancel_check: Optional[Callable[[], bool]] = None
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

    def is_cancelled(self) -> bool:
        """Check whether the caller asked to stop between stages."""
        if self.cancel_check is None:
            return False
        cancelled = bool(self.cancel_check())
        if cancelled:
            logger.info(f"Session {self.session_id} cancelled")
        return cancelled

    def __str__(self) -> str:
        return f"ScanSession({self.cursor.name}, id={self.session_id[:8]})"
