"""Runtime settings read from the environment (and a ``.env`` file, if present)."""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dotenv import find_dotenv, load_dotenv

from .positions import YTD_STATUS

BENCHMARK_ENV = "BROKERLEDGER_BENCHMARK_RETURN"
YTD_STATUS_ENV = "BROKERLEDGER_YTD_STATUS"
LOG_LEVEL_ENV = "BROKERLEDGER_LOG_LEVEL"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerSettings:
    """Settings for a ledger run.

    Attributes:
        benchmark_return: Benchmark return attached to snapshots and summaries, if configured.
        ytd_status: Status literal that marks a closed position as year-to-date.
        log_level: Name of the logging level used by the CLI.
    """

    benchmark_return: Decimal | None = None
    ytd_status: str = YTD_STATUS
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "LedgerSettings":
        """
        Build settings from environment variables.

        Args:
            load_env_file: Load the nearest ``.env`` file, searching up from
                the working directory, into the environment first.

        Returns:
            LedgerSettings with defaults for unset variables.

        Raises:
            ValueError: If a variable is set to an invalid value.
        """
        if load_env_file:
            load_dotenv(find_dotenv(usecwd=True))

        benchmark = None
        raw_benchmark = os.getenv(BENCHMARK_ENV, "").strip()
        if raw_benchmark:
            try:
                benchmark = Decimal(raw_benchmark)
            except InvalidOperation:
                raise ValueError(f"{BENCHMARK_ENV} must be a number, got {raw_benchmark!r}")
            if not benchmark.is_finite():
                raise ValueError(f"{BENCHMARK_ENV} must be a finite number, got {raw_benchmark!r}")

        ytd_status = os.getenv(YTD_STATUS_ENV, "").strip() or YTD_STATUS

        log_level = os.getenv(LOG_LEVEL_ENV, "").strip().upper() or "WARNING"
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"{LOG_LEVEL_ENV} must be one of {', '.join(_LOG_LEVELS)}, got {log_level!r}")

        return cls(benchmark_return=benchmark, ytd_status=ytd_status, log_level=log_level)

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)


def configure_logging(settings: LedgerSettings, debug: bool = False) -> None:
    """Configure root logging for command-line use. ``debug`` overrides the configured level."""
    logging.basicConfig(
        level=logging.DEBUG if debug else settings.logging_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
