"""Classification of psql restore errors."""

import re
from collections import Counter
from typing import Dict, Iterable, List

from devbootstrap.models import RestoreReport

CATEGORIES = ("ownership", "already_exists", "foreign_key", "missing_extension", "other")

_EXTENSION_PATTERN = re.compile(r"extension.*(not available|does not exist)", re.IGNORECASE)
_ERROR_PREFIX = re.compile(r"^.*?ERROR:\s*", re.IGNORECASE)


def classify_line(line: str) -> str:
    """Returns the category of one ``ERROR:`` line of restore output."""
    lowered = line.lower()
    if _EXTENSION_PATTERN.search(line):
        return "missing_extension"
    if "violates foreign key constraint" in lowered:
        return "foreign_key"
    if "must be owner" in lowered:
        return "ownership"
    if "already exists" in lowered or "duplicate key value" in lowered:
        return "already_exists"
    return "other"


def error_lines(output: str) -> List[str]:
    return [line.strip() for line in output.splitlines() if "ERROR:" in line]


def analyze(lines: Iterable[str], top: int = 10) -> RestoreReport:
    counts: Dict[str, int] = {category: 0 for category in CATEGORIES}
    fk_messages: Counter = Counter()
    extensions: List[str] = []

    for line in lines:
        category = classify_line(line)
        counts[category] += 1
        message = _ERROR_PREFIX.sub("", line).strip()
        if category == "foreign_key":
            fk_messages[message] += 1
        elif category == "missing_extension" and message not in extensions:
            extensions.append(message)

    return RestoreReport(
        counts=counts,
        foreign_key_messages=fk_messages.most_common(top),
        missing_extensions=extensions,
    )


def analyze_output(output: str) -> RestoreReport:
    return analyze(error_lines(output))


def recommendations(report: RestoreReport) -> List[str]:
    counts = report.counts
    notes: List[str] = []

    if counts.get("ownership"):
        notes.append(
            f"Ownership errors ({counts['ownership']}) are safe to ignore: the dump was "
            "taken with --no-owner."
        )
    if counts.get("already_exists"):
        notes.append(
            f"Duplicate/already exists errors ({counts['already_exists']}) are expected: the "
            "database already holds base data (currencies, countries, ...)."
        )
    if counts.get("missing_extension"):
        notes.append(
            f"Extension errors ({counts['missing_extension']}) need action: install the "
            "missing extension(s) in the local PostgreSQL image."
        )
    if counts.get("foreign_key"):
        notes.append(
            f"Foreign key violations ({counts['foreign_key']}) mean partial data loss: child "
            "rows whose parent is missing were skipped."
        )

    if counts.get("foreign_key", 0) > 100:
        notes.append(
            "Most foreign key errors come from a partially populated database; retry against "
            "a clean database or accept that some records were not imported."
        )
    else:
        notes.append("The restore completed; most errors are benign.")

    return notes
