"""Local test-suite coverage harvesting.

Runs the configured test command (``go test -cover ./...`` by default) and
turns the first package summary line of the form

    ok  \tpkg/x\t0.012s\tcoverage: 63.3% of statements

into a CoverageEvent.
"""
import math
import subprocess
from dataclasses import dataclass
from typing import Iterable, Sequence

import structlog

from ..event_models import TRACK_TEST_COVERAGE_EVENT, CoverageEvent, Payload, new_identifier

log = structlog.get_logger()

SERVICE_NAME = "tracker"
CULTURE = "en_EN"
ACTION_TYPE = "api"
VERSION = "1.0.0"

COVERAGE_MARKER = "coverage"


@dataclass(frozen=True)
class CoverageResult:
    """Package identifier and coverage percentage parsed from one line."""
    action: str
    coverage: float


def parse_coverage_line(line: str) -> CoverageResult | None:
    """
    Parse a single line of test-runner output.

    The number starts one separator character after the word "coverage"
    and runs up to the next "%".

    Returns:
        CoverageResult, or None if the line does not qualify
    """
    fields = line.split("\t")
    if len(fields) <= 3 or fields[0].strip() != "ok":
        return None

    summary = fields[3]
    beg = summary.find(COVERAGE_MARKER)
    if beg == -1:
        return None
    beg += len(COVERAGE_MARKER) + 1
    end = summary.find("%", beg)
    if end == -1:
        return None

    text = summary[beg:end].strip()
    try:
        coverage = float(text)
    except ValueError:
        log.info("harvest.coverage_unparsable", value=text)
        return None
    if not math.isfinite(coverage) or coverage < 0:
        log.info("harvest.coverage_out_of_range", value=text)
        return None

    return CoverageResult(action=fields[1].strip(), coverage=coverage)


def parse_output(lines: Iterable[str]) -> CoverageResult | None:
    """Return the first qualifying line's result, scanning in order."""
    for line in lines:
        result = parse_coverage_line(line)
        if result is not None:
            log.info("harvest.coverage_found", action=result.action, coverage=result.coverage)
            return result
    return None


def build_event(result: CoverageResult) -> CoverageEvent:
    """Wrap a parsed result into a locally synthesized coverage event."""
    return CoverageEvent(
        event=TRACK_TEST_COVERAGE_EVENT,
        venture_config_id=new_identifier(),
        venture_reference=new_identifier(),
        created_at="",
        culture=CULTURE,
        action_type=ACTION_TYPE,
        action_reference=result.action,
        version=VERSION,
        route="",
        payload=Payload(service_name=SERVICE_NAME, coverage=result.coverage),
    )


class CoverageHarvester:
    """
    Runs the local test suite and extracts one coverage event.

    Harvesting is best effort: a command that cannot start, times out or
    exits non-zero yields no result instead of raising.
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: str | None = None,
        timeout_seconds: float | None = None,
    ):
        """
        Args:
            command: Test command argv, e.g. ["go", "test", "-cover", "./..."]
            cwd: Working directory for the command
            timeout_seconds: Optional wall-clock limit for the run
        """
        self.command = list(command)
        self.cwd = cwd
        self.timeout_seconds = timeout_seconds

    def harvest(self) -> CoverageEvent | None:
        """
        Run the command to completion and parse its standard output.

        Blocking; callers on an event loop should run it in a thread.
        """
        output = self._run()
        if output is None:
            return None

        result = parse_output(output.splitlines())
        if result is None:
            log.info("harvest.no_result", command=self.command)
            return None
        return build_event(result)

    def _run(self) -> str | None:
        log.info("harvest.running", command=self.command)
        try:
            proc = subprocess.run(
                self.command,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout_seconds,
            )
        except (OSError, ValueError) as e:
            log.info("harvest.command_failed", command=self.command, error=str(e))
            return None
        except subprocess.TimeoutExpired:
            log.info("harvest.command_timeout", command=self.command, timeout=self.timeout_seconds)
            return None

        if proc.returncode != 0:
            log.info("harvest.command_failed", command=self.command, exit_code=proc.returncode)
            return None
        return proc.stdout
