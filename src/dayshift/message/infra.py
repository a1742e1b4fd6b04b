"""Infra-relevance of a change set: classification, message rewrite, changelog."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Iterable

from .rules import DEFAULT_RULES, InfraRule

logger = logging.getLogger(__name__)

CHANGELOG_MARKER = "<!-- New entries will be added above this line -->"
CHANGELOG_TEMPLATE = f"""# Infrastructure Change Log

This document tracks all infrastructure changes made to the project.

---

{CHANGELOG_MARKER}
"""

_TYPE_PREFIX = re.compile(r"^(feat|fix|docs|style|refactor|test|chore|infra)\b")


@dataclass(frozen=True)
class InfraFile:
    file: str
    category: str


@dataclass(frozen=True)
class InfraChangeReport:
    files: tuple[InfraFile, ...] = ()
    categories: frozenset[str] = field(default_factory=frozenset)

    @property
    def has_infra_changes(self) -> bool:
        return bool(self.files)

    @property
    def summary(self) -> str:
        if not self.files:
            return ""
        return "Infrastructure changes detected in: " + ", ".join(sorted(self.categories))


def classify(changed_files: Iterable[str], rules: Iterable[InfraRule] = DEFAULT_RULES) -> InfraChangeReport:
    """First matching rule wins for each file."""

    rule_list = list(rules)
    files: list[InfraFile] = []
    for path in changed_files:
        for rule in rule_list:
            if rule.matches(path):
                files.append(InfraFile(file=path, category=rule.category))
                break
    return InfraChangeReport(files=tuple(files), categories=frozenset(f.category for f in files))


def augment_message(message: str, report: InfraChangeReport) -> str:
    """Reclassify ``message`` as ``infra`` and append the infra file list.

    Messages already starting with ``infra`` and change sets without infra
    files are returned unchanged.
    """

    if not report.has_infra_changes or message.startswith("infra"):
        return message

    first, _, rest = message.partition("\n")
    if _TYPE_PREFIX.match(first):
        first = _TYPE_PREFIX.sub("infra", first, count=1)
    else:
        first = f"infra: {first}"

    details = "Infrastructure changes:\n" + "\n".join(
        f"- {item.file} ({item.category})" for item in report.files
    )
    body = rest.rstrip()
    if body:
        return f"{first}\n{body}\n\n{details}"
    return f"{first}\n\n{details}"


def append_changelog(
    doc_path: Path,
    report: InfraChangeReport,
    header: str,
    *,
    author: str,
    on: date | None = None,
) -> Path:
    """Insert a dated entry above the changelog marker, creating the file if needed."""

    doc_path.parent.mkdir(parents=True, exist_ok=True)
    if not doc_path.exists():
        doc_path.write_text(CHANGELOG_TEMPLATE, encoding="utf-8")

    entry_date = (on or date.today()).isoformat()
    files = "\n".join(f"- {item.file}" for item in report.files)
    entry = (
        f"\n## {entry_date} - {author}\n\n"
        f"### Category: {', '.join(sorted(report.categories))}\n"
        f"**Change Type**: Modified\n"
        f"**Component**: {report.files[0].category}\n"
        f"**Description**: {header}\n"
        f"**Files Changed**:\n{files}\n\n---\n"
    )

    content = doc_path.read_text(encoding="utf-8")
    if CHANGELOG_MARKER in content:
        content = content.replace(CHANGELOG_MARKER, entry + "\n" + CHANGELOG_MARKER, 1)
    else:
        content += "\n" + entry
    doc_path.write_text(content, encoding="utf-8")
    logger.info("Updated infrastructure documentation: %s", doc_path)
    return doc_path


__all__ = [
    "CHANGELOG_MARKER",
    "InfraChangeReport",
    "InfraFile",
    "append_changelog",
    "augment_message",
    "classify",
]
