"""
NAND BBM Inspector - bad block map diagnostics for NAND512 flash dumps.

Samples the factory bad-block markers of a raw NAND512W3A2C dump, decodes
the two FlashFX Bad Block Map headers near the end of the device and
checks that both replacement maps agree with the factory bad-block table.
"""

__version__ = "1.0.0"
__license__ = "MIT"

# Re-export main entry point
from bbm_inspector.main import main

# Re-export the scan entry points
from bbm_inspector.analysis.pipeline import (
    ScanResult,
    run_scan,
)
from bbm_inspector.core.byte_cursor import ByteCursor
from bbm_inspector.core.geometry import (
    DeviceGeometry,
    get_standard_nand512_geometry,
)
from bbm_inspector.core.session import ScanSession
from bbm_inspector.core.settings import ScanSettings

__all__ = [
    # Main entry point
    "main",
    "__version__",

    # Scanning
    "ScanResult",
    "run_scan",
    "ScanSession",
    "ScanSettings",
    "ByteCursor",

    # Geometry
    "DeviceGeometry",
    "get_standard_nand512_geometry",
]
