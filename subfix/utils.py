"""Utility functions for SubFix."""

import os
import logging
from .exceptions import FileSystemError

logger = logging.getLogger(__name__)

def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e

def read_text_file(file_path: str, encoding: str = 'utf-8') -> str:
    """
    Reads a whole text file.

    Raises:
        FileNotFoundError: If the file does not exist.
        FileSystemError: If the path is not a file or cannot be read.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")
    if not os.path.isfile(file_path):
        raise FileSystemError(f"Path is not a file: {file_path}")
    try:
        # utf-8-sig strips the BOM some subtitle editors write
        with open(file_path, 'r', encoding='utf-8-sig' if encoding.lower() == 'utf-8' else encoding) as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Error reading file {file_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not read file {file_path}: {e}") from e

def write_text_file(file_path: str, content: str) -> None:
    """Writes `content` to `file_path` as UTF-8, creating the parent directory if needed."""
    parent = os.path.dirname(file_path)
    if parent:
        ensure_dir_exists(parent)
    try:
        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(content)
    except OSError as e:
        logger.error(f"Error writing file {file_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not write file {file_path}: {e}") from e

def build_output_path(input_path: str, output_dir: str, prefix: str = "fixed_") -> str:
    """Returns `<output_dir>/<prefix><input file name>`."""
    return os.path.join(output_dir, f"{prefix}{os.path.basename(input_path)}")
