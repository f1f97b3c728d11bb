"""
Scan settings for the bad-block map inspector.

Settings are a validated pydantic model with JSON persistence. Device
geometry is deliberately not part of the settings; it is fixed by
DeviceGeometry.

Settings file locations:
    - Linux: ~/.config/nand-bbm-inspector/settings.json
    - Windows: %APPDATA%/NandBbmInspector/settings.json
    - macOS: ~/Library/Application Support/NandBbmInspector/settings.json
"""

import json
import logging
import os
import sys
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Settings File Paths
# =============================================================================

def get_settings_dir() -> Path:
    """Get the platform-specific settings directory."""
    if sys.platform == 'win32':
        base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
        return base / 'NandBbmInspector'
    elif sys.platform == 'darwin':
        return Path.home() / 'Library' / 'Application Support' / 'NandBbmInspector'
    else:
        xdg_config = os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config')
        return Path(xdg_config) / 'nand-bbm-inspector'


def get_settings_file() -> Path:
    """Get the settings file path."""
    return get_settings_dir() / 'settings.json'


# =============================================================================
# Enumerations
# =============================================================================

class PatternPass(str, Enum):
    """Optional diagnostic passes over the whole image."""
    E7 = "e7"              # Runs of 0xE7 filler bytes
    ZEROS = "zeros"        # Runs of 0x00 bytes
    SEQUENCE = "sequence"  # Strictly ascending byte runs


# =============================================================================
# Settings Model
# =============================================================================

class ScanSettings(BaseModel):
    """
    Tunable parameters of a scan.

    Attributes:
        write_report_file: Persist the report next to the image
        report_suffix: Suffix appended to the image stem for the report
        header_search_start_permille: Where the BBM signature search starts,
            in thousandths of the image size
        max_header_distance: Largest accepted distance between the low and
            high header signatures, in bytes
        e7_threshold: Minimum run of 0xE7 bytes that is reported
        zero_threshold: Minimum run of 0x00 bytes that is reported
        ascending_min_length: Minimum ascending run that is reported
        pattern_passes: Diagnostic passes to run after the BBM checks
        zone_blocks: Blocks per zone in the bad-block distribution summary
        log_file: Path of the debug log

    Example:
        >>> settings = ScanSettings(pattern_passes=["e7"])
        >>> settings.pattern_passes
        [<PatternPass.E7: 'e7'>]
    """
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    write_report_file: bool = True
    report_suffix: str = "_out.txt"
    header_search_start_permille: int = Field(975, ge=0, le=1000)
    max_header_distance: int = Field(16900, gt=0)
    e7_threshold: int = Field(7, ge=1)
    zero_threshold: int = Field(13, ge=1)
    ascending_min_length: int = Field(9, ge=2)
    pattern_passes: List[PatternPass] = Field(default_factory=list)
    zone_blocks: int = Field(256, ge=1)
    log_file: str = "bbm_inspector.log"

    @field_validator("pattern_passes")
    @classmethod
    def _unique_passes(cls, passes: List[PatternPass]) -> List[PatternPass]:
        # Keep the first occurrence of each pass, in the requested order
        return list(dict.fromkeys(passes))

    @field_validator("report_suffix")
    @classmethod
    def _suffix_not_empty(cls, suffix: str) -> str:
        if not suffix.strip():
            raise ValueError("report_suffix must not be empty")
        return suffix


# =============================================================================
# Persistence
# =============================================================================

def load_settings(path: Optional[Union[str, Path]] = None) -> ScanSettings:
    """
    Load settings from a JSON file.

    A missing file yields the defaults. An unreadable or invalid file is an
    error: silently scanning with different thresholds would change the
    report.

    Args:
        path: Settings file (default: get_settings_file())

    Returns:
        Validated ScanSettings

    Raises:
        ValueError: If the file is not valid JSON or fails validation
    """
    settings_path = Path(path) if path is not None else get_settings_file()

    if not settings_path.exists():
        logger.debug(f"No settings file at {settings_path}, using defaults")
        return ScanSettings()

    try:
        settings = ScanSettings.model_validate_json(
            settings_path.read_text(encoding='utf-8')
        )
    except ValidationError as e:
        raise ValueError(f"Invalid settings in {settings_path}: {e}") from e

    logger.info(f"Loaded settings from {settings_path}")
    return settings


def save_settings(settings: ScanSettings,
                  path: Optional[Union[str, Path]] = None) -> Path:
    """
    Save settings to a JSON file.

    Returns:
        Path the settings were written to
    """
    settings_path = Path(path) if path is not None else get_settings_file()
    settings_path.parent.mkdir(parents=True, exist_ok=True)

    with open(settings_path, 'w', encoding='utf-8') as f:
        json.dump(settings.model_dump(mode="json"), f, indent=2)

    logger.info(f"Settings saved to {settings_path}")
    return settings_path
