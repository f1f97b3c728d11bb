"""
JSON export of scan results.

Saves what a scan found, including partial results when a stage aborted,
so it can be compared or post-processed without re-reading the image.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from bbm_inspector.analysis.pipeline import ScanResult


def scan_result_to_dict(result: ScanResult, image_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Serializable representation of a ScanResult.

    Args:
        result: Finished (or aborted) scan
        image_path: Path of the scanned image, recorded for reference

    Returns:
        Dictionary with plain JSON types only
    """
    headers = None
    if result.headers is not None:
        headers = {
            'low': result.headers.low.to_dict(),
            'high': result.headers.high.to_dict(),
            'distance': result.headers.distance,
        }

    return {
        'timestamp': datetime.now().isoformat(),
        'image': image_path,
        'image_size': result.image_size,
        'completed': result.completed,
        'cancelled': result.cancelled,
        'aborted_stages': [stage.value for stage in result.aborted_stages],
        'bad_blocks': result.table.to_dict(),
        'headers': headers,
        'validation': result.validation.to_dict() if result.validation else None,
        'runs': {
            name: [{'start': r.start, 'length': r.length} for r in runs]
            for name, runs in result.runs.items()
        },
        'run_summaries': [s.to_dict() for s in result.run_summaries],
        'zone_counts': list(result.zone_counts),
        'findings': [f.to_dict() for f in result.findings],
    }


def save_scan_results(result: ScanResult, filename: Union[str, Path],
                      image_path: Optional[str] = None) -> Path:
    """
    Save scan results to a JSON file.

    Args:
        result: Scan to export
        filename: Output filename
        image_path: Path of the scanned image

    Returns:
        Path the results were written to

    Raises:
        OSError: If the file cannot be written

    Example:
        >>> save_scan_results(result, "dump_scan.json", image_path="dump.bin")
    """
    data = scan_result_to_dict(result, image_path)

    # Ensure directory exists
    output_path = Path(filename)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)

    logging.info(f"Scan results saved to {output_path}")
    logging.info(
        f"{data['bad_blocks']['blocks_sampled']} blocks sampled, "
        f"{len(data['bad_blocks']['entries'])} bad blocks"
    )
    return output_path


def load_scan_results(filename: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """
    Load previously saved scan results.

    Returns:
        Dictionary with scan data, or None if the file doesn't exist

    Raises:
        ValueError: If the file is not valid JSON
    """
    try:
        with open(filename, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        logging.debug(f"No scan results file found: {filename}")
        return None
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid scan results in {filename}: {e}") from e

    logging.info(f"Loaded scan results from {filename}")
    return data
