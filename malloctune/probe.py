"""
Memory probe - reads per-process RSS from inside a running Agent container.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

# Command string and RSS (KiB) of every process, one per line
PS_COMMAND = ["ps", "-aeo", "cmd,rss", "--no-headers"]

# One pattern per Agent process; the trailing number is its RSS
ROLE_PATTERNS = {
    "agent": re.compile(r"agent run *(\d+)$"),
    "process_agent": re.compile(r"process-agent .* (\d+)$"),
    "security_agent": re.compile(r"security-agent .* (\d+)$"),
    "trace_agent": re.compile(r"trace-agent .* (\d+)$"),
}


@dataclass(frozen=True)
class MemoryStats:
    """RSS in KiB of the four Agent processes."""
    agent: int
    process_agent: int
    security_agent: int
    trace_agent: int

    @classmethod
    def from_readings(cls, readings: Dict[str, int]) -> Optional["MemoryStats"]:
        """
        Build stats from per-role readings.

        Returns None unless every role has a positive value; a partial
        reading says nothing about the candidate.
        """
        values = {role: readings.get(role, 0) for role in ROLE_PATTERNS}
        if all(value > 0 for value in values.values()):
            return cls(**values)
        return None

    @property
    def total(self) -> int:
        return self.agent + self.process_agent + self.security_agent + self.trace_agent

    def to_dict(self) -> Dict[str, int]:
        return {
            "agent": self.agent,
            "process_agent": self.process_agent,
            "security_agent": self.security_agent,
            "trace_agent": self.trace_agent,
        }


def iter_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Decode a stream of output chunks into lines, joining split lines."""
    pending = ""
    for chunk in chunks:
        pending += chunk.decode("utf-8", errors="replace")
        *lines, pending = pending.split("\n")
        yield from lines
    if pending:
        yield pending


def scan(lines: Iterable[str]) -> Dict[str, int]:
    """
    Pick each role's RSS out of ps output.

    Lines matching no role are skipped. If a role matches several lines,
    the last one wins.
    """
    readings = {role: 0 for role in ROLE_PATTERNS}
    for line in lines:
        line = line.rstrip()
        for role, pattern in ROLE_PATTERNS.items():
            match = pattern.search(line)
            if match:
                readings[role] = int(match.group(1))
    return readings


def aggregate(readings: Dict[str, int]) -> Optional[int]:
    """Total RSS across all four roles, or None for an incomplete reading."""
    stats = MemoryStats.from_readings(readings)
    return stats.total if stats is not None else None


class MemoryProbe:
    """Runs ps inside a container and reduces its output to MemoryStats."""

    def __init__(self, command: Optional[list] = None):
        self.command = command or PS_COMMAND

    def sample(self, container) -> Optional[MemoryStats]:
        """
        Sample a running container.

        Docker errors propagate to the caller; a missing or malformed
        process only makes the result None.
        """
        result = container.exec_run(self.command, stdout=True, stderr=False, stream=True)
        readings = scan(iter_lines(result.output))
        stats = MemoryStats.from_readings(readings)
        if stats is None:
            missing = [role for role, value in readings.items() if value <= 0]
            logger.warning(f"Incomplete memory reading, missing {missing}")
        return stats
