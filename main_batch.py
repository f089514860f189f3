#!/usr/bin/env python3
"""
SubFix Batch Processing Entry Point

Corrects every .srt file in a directory against its reference transcript
(a sibling .txt file with the same name, or one shared --reference file),
writing the results into a 'Fixed' subfolder.
"""

import argparse
import logging
import os
import sys
import time
from typing import List, Optional, Tuple

from tqdm import tqdm

from subfix.cli import add_common_arguments, build_transport, prepare_settings
from subfix.corrector import SubtitleCorrector
from subfix.exceptions import SubFixError, FileSystemError
from subfix.log_setup import progress_logging
from subfix.utils import ensure_dir_exists

logger = logging.getLogger(__name__)

def find_subtitle_jobs(input_dir: str, shared_reference: Optional[str] = None) -> List[Tuple[str, str]]:
    """
    Pairs each .srt file in the input directory with its reference transcript.

    Args:
        input_dir: The directory to search for subtitle files.
        shared_reference: Reference used for every file; when None each
                          'name.srt' needs a 'name.txt' beside it.

    Returns:
        (subtitle_path, reference_path) tuples sorted by file name. Subtitle
        files without a reference are skipped with a warning.

    Raises:
        FileNotFoundError: If the input directory doesn't exist.
        ValueError: If the input path is not a directory.
    """
    if not os.path.exists(input_dir):
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    if not os.path.isdir(input_dir):
        raise ValueError(f"Input path is not a directory: {input_dir}")

    jobs = []
    logger.info(f"Scanning directory for SRT files: {input_dir}")
    for filename in sorted(os.listdir(input_dir)):
        if not filename.lower().endswith(".srt"):
            continue
        subtitle_path = os.path.join(input_dir, filename)
        if not os.path.isfile(subtitle_path):
            continue
        reference_path = shared_reference or os.path.join(input_dir, os.path.splitext(filename)[0] + ".txt")
        if not os.path.isfile(reference_path):
            logger.warning(f"No reference transcript for {filename} (expected {reference_path}). Skipping.")
            continue
        jobs.append((subtitle_path, reference_path))

    logger.info(f"Found {len(jobs)} SRT file(s) with a reference transcript.")
    return jobs


def run_batch_processing(argv: Optional[list] = None):
    """Parses arguments, sets up, and runs the batch subtitle correction."""
    parser = argparse.ArgumentParser(
        description="SubFix Batch: Correct every SRT file in a directory against reference transcripts.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "-i", "--input-dir",
        required=True,
        help="Directory containing the .srt files (and their .txt references)."
    )
    parser.add_argument(
        "-r", "--reference",
        default=None,
        help="One reference transcript used for every file, instead of per-file .txt siblings."
    )
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    settings = prepare_settings(args)

    try:
        jobs = find_subtitle_jobs(args.input_dir, args.reference)
    except (FileNotFoundError, ValueError) as e:
        logger.critical(f"Input directory error: {e}")
        sys.exit(1)
    if not jobs:
        logger.warning(f"No .srt files with references found in {args.input_dir}. Exiting.")
        sys.exit(0)

    output_dir = os.path.join(args.input_dir, "Fixed")
    try:
        ensure_dir_exists(output_dir)
    except FileSystemError as e:
        logger.critical(f"Could not create output directory: {e}")
        sys.exit(1)

    # One transport (and HTTP connection pool) for the whole run
    transport = build_transport(settings)
    corrector = SubtitleCorrector(settings, transport)

    total_files = len(jobs)
    files_processed = 0
    files_failed = 0
    batch_start_time = time.time()

    logger.info(f"--- Starting Batch Subtitle Correction for {total_files} files ---")

    try:
        with progress_logging(), tqdm(total=total_files, unit="file", desc="Starting Batch") as pbar:
            for subtitle_path, reference_path in jobs:
                filename = os.path.basename(subtitle_path)
                pbar.set_description(f"Correcting: {filename[:30]}...")
                try:
                    corrector.correct_file(subtitle_path, reference_path, output_dir)
                    files_processed += 1
                except SubFixError as e:
                    logger.error(f"SubFix failed for '{filename}': {e}")
                    files_failed += 1
                except KeyboardInterrupt:
                    logger.warning("Batch process interrupted by user (Ctrl+C). Exiting.")
                    sys.exit(1)
                except Exception as e:
                    logger.error(f"An unexpected error occurred processing '{filename}': {e}", exc_info=True)
                    files_failed += 1
                finally:
                    pbar.update(1)
    finally:
        transport.close()

    logger.info(f"--- Batch Subtitle Correction Finished ---")
    logger.info(f"Total time: {time.time() - batch_start_time:.2f} seconds")
    logger.info(f"Successfully processed: {files_processed}/{total_files} files")
    logger.info(f"Failed: {files_failed}/{total_files} files")

    sys.exit(1 if files_failed > 0 else 0)


if __name__ == "__main__":
    if sys.version_info < (3, 8):
        sys.stderr.write("SubFix requires Python 3.8 or later.\n")
        sys.exit(1)

    run_batch_processing()
