"""Command-Line Interface handler for SubFix."""

import argparse
import logging
import os
import sys
from typing import Optional

from tqdm import tqdm

from .config_loader import ConfigLoader, CorrectionSettings, resolve_api_key
from .corrector import SubtitleCorrector
from .exceptions import SubFixError, ConfigurationError
from .log_setup import progress_logging, setup_logging
from .models import EventKind, PipelineEvent
from .transport import GeminiTransport, KNOWN_MODELS

logger = logging.getLogger(__name__) # Get logger for this module

DEFAULT_CONFIG_PATH = "config.yaml"


class ProgressReporter:
    """Drives a tqdm bar (0-100%) from pipeline events."""

    def __init__(self, bar: tqdm):
        self.bar = bar

    def __call__(self, event: PipelineEvent) -> None:
        if event.kind is EventKind.BATCH_STARTED:
            self.bar.set_description(event.message)
        elif event.kind is EventKind.RETRY:
            self.bar.set_postfix_str(event.message[-60:])
        elif event.kind is EventKind.PROGRESS:
            self.bar.update(event.progress - self.bar.n)
            self.bar.set_postfix_str("")


def load_settings(config_path: str) -> CorrectionSettings:
    """Loads settings from YAML; a missing default config file falls back to built-in defaults."""
    if config_path == DEFAULT_CONFIG_PATH and not os.path.exists(config_path):
        logger.warning(f"No {DEFAULT_CONFIG_PATH} found. Using built-in defaults.")
        return CorrectionSettings()
    config = ConfigLoader().load_config(config_path)
    return CorrectionSettings.from_config(config)


def build_transport(settings: CorrectionSettings) -> GeminiTransport:
    return GeminiTransport(
        api_key=settings.api_key or "",
        model=settings.model,
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
        disable_safety_filters=settings.disable_safety_filters,
        timeout=settings.request_timeout,
        api_base_url=settings.api_base_url,
    )


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by the single-file and directory entry points."""
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to the configuration YAML file."
    )
    parser.add_argument(
        "--api-key",
        default=None, # Falls back to config, then GEMINI_API_KEY / GOOGLE_API_KEY
        help="Google API key for the Gemini API."
    )
    parser.add_argument(
        "--model",
        default=None, # Default taken from config
        help=f"Override the Gemini model id (known: {', '.join(KNOWN_MODELS)})."
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Override the number of subtitle entries sent per request."
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Override the maximum number of attempts per request."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level for console and file output."
    )


def prepare_settings(args: argparse.Namespace) -> CorrectionSettings:
    """Sets up logging, loads config and applies CLI overrides. Exits on config errors."""
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    setup_logging(log_level=log_level, log_dir='logs', log_file='subfix_init.log')

    try:
        settings = load_settings(args.config)
        settings = settings.with_overrides(
            model=args.model,
            batch_size=args.batch_size,
            max_attempts=args.max_attempts,
        )
    except (ConfigurationError, FileNotFoundError) as e:
        logger.critical(f"Failed to load configuration from {args.config}: {e}")
        sys.exit(1)

    setup_logging(log_level=log_level, log_dir=settings.log_dir, log_file=settings.log_file)
    logger.info("Logging re-configured with settings from config file.")

    api_key = resolve_api_key(args.api_key, settings)
    if api_key != settings.api_key:
        settings = settings.with_overrides(api_key=api_key)
    return settings


def notify_failure(message: str) -> None:
    sys.stderr.write(f"\nProcessing aborted: {message}\n")
    sys.stderr.flush()


class CLIHandler:
    """Parses arguments and runs the correction for one subtitle file."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            description="SubFix: Correct machine-generated subtitles against a reference transcript with Gemini.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter # Show defaults in help
        )
        parser.add_argument(
            "-s", "--subtitles",
            required=True,
            help="Path to the input subtitle file (.srt)."
        )
        parser.add_argument(
            "-r", "--reference",
            required=True,
            help="Path to the reference transcript (plain text)."
        )
        parser.add_argument(
            "-o", "--output-dir",
            default=".",
            help="Directory to save the corrected subtitle file."
        )
        add_common_arguments(parser)
        return parser

    def run(self, argv: Optional[list] = None) -> None:
        """Parses arguments, sets up logging, loads config, and runs the corrector."""
        args = self.parser.parse_args(argv)
        settings = prepare_settings(args)

        transport = None
        try:
            transport = build_transport(settings)
            with progress_logging(), tqdm(total=100, unit="%", desc="Starting") as pbar:
                corrector = SubtitleCorrector(settings, transport, listener=ProgressReporter(pbar))
                output_path = corrector.correct_file(args.subtitles, args.reference, args.output_dir)
            logger.info(f"SubFix finished successfully. Output: {output_path}")
            sys.exit(0)

        except SubFixError as e:
            logger.error(f"A SubFix error occurred: {e}")
            notify_failure(str(e))
            sys.exit(1)
        except KeyboardInterrupt:
             logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
             sys.exit(1)
        except Exception as e:
             logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
             notify_failure(str(e))
             sys.exit(2) # Use a different exit code for unexpected crashes
        finally:
            if transport is not None:
                transport.close()


def main() -> None:
    CLIHandler().run()
