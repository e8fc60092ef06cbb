"""Input loading: JSON arrays and CSV files into a list of records."""

import json
from pathlib import Path
from typing import Any, Dict, List, Union
import polars as pl
from .errors import InputError
from .logging_config import get_logger
from .pipeline.importer import ensure_record_sequence

logger = get_logger(__name__)

SUPPORTED_SUFFIXES = (".json", ".csv")


def load_records(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Load product records from a file.

    JSON input must be a top-level array of objects. CSV columns are read as
    text so numeric coercion is left to normalization.

    Args:
        path: Input file path

    Returns:
        List of records in file order

    Raises:
        InputError: If the file is missing, unreadable, unsupported or malformed
    """
    input_path = Path(path)
    if not input_path.is_file():
        raise InputError(f"Input file '{input_path}' not found")

    suffix = input_path.suffix.lower()
    if suffix == ".json":
        records = _load_json(input_path)
    elif suffix == ".csv":
        records = _load_csv(input_path)
    else:
        raise InputError(
            f"Unsupported file format '{input_path.suffix}' (supported: {', '.join(SUPPORTED_SUFFIXES)})"
        )

    ensure_record_sequence(records)
    logger.debug(f"Loaded {len(records)} records from {input_path}")
    return records


def _load_json(path: Path) -> List[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise InputError(f"Cannot read '{path}': {e}") from e
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid JSON in '{path}': {e}") from e

    if not isinstance(data, list):
        raise InputError(f"Expected a JSON array of products in '{path}', got {type(data).__name__}")
    return data


def _load_csv(path: Path) -> List[Dict[str, Any]]:
    try:
        df = pl.read_csv(str(path), infer_schema_length=0)
    except pl.exceptions.NoDataError:
        return []
    except (OSError, pl.exceptions.PolarsError) as e:
        raise InputError(f"Cannot read CSV '{path}': {e}") from e

    # Empty cells come back as null, which validation treats as missing
    return df.to_dicts()
