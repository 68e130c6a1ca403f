"""
File utility functions for event and report storage.

This module provides utilities for managing directories and writing the
JSON and JSON-lines files the persistence sink produces.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Union


logger = logging.getLogger(__name__)


def ensure_directory_exists(directory_path: Union[str, Path]) -> None:
    """
    Ensure that a directory exists, creating it if necessary.

    Args:
        directory_path: Path to the directory
    """
    Path(directory_path).mkdir(parents=True, exist_ok=True)


def append_jsonl(file_path: Union[str, Path], record: Dict[str, Any]) -> str:
    """
    Append one record as a JSON line.

    Args:
        file_path: Target ``.jsonl`` file; parent directories are created
        record: JSON-serialisable mapping

    Returns:
        Path of the file written
    """
    ensure_directory_exists(os.path.dirname(os.fspath(file_path)) or '.')
    with open(file_path, 'a', encoding='utf-8') as f:
        f.write(json.dumps(record, default=str))
        f.write('\n')
    return os.fspath(file_path)


def read_jsonl(file_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read every record of a JSON-lines file, skipping blank lines."""
    records = []
    with open(file_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(json.loads(line))
    return records


def write_json(file_path: Union[str, Path], data: Dict[str, Any], indent: int = 2) -> str:
    """
    Write a mapping as a JSON document.

    Args:
        file_path: Target file; parent directories are created
        data: JSON-serialisable mapping
        indent: Indentation for readability

    Returns:
        Path of the file written
    """
    ensure_directory_exists(os.path.dirname(os.fspath(file_path)) or '.')
    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, default=str)
    logger.debug(f"Wrote {file_path}")
    return os.fspath(file_path)
