"""Infra classification rules, built in and loaded from YAML."""

from __future__ import annotations

import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import DayshiftError


class InfraRulesLoadError(DayshiftError):
    """Raised when the infra rules file cannot be parsed."""


class InfraRule(BaseModel):
    """Classifies a changed path into an infrastructure category."""

    pattern: str = Field(..., description="Regular expression searched in the repo-relative path.")
    category: str = Field(..., description="Category reported for matching paths.")

    @field_validator("pattern")
    @classmethod
    def _compile(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid pattern {value!r}: {exc}") from exc
        return value

    @field_validator("category")
    @classmethod
    def _normalize_category(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Rule category must not be empty")
        return normalized

    def matches(self, path: str) -> bool:
        return re.search(self.pattern, path) is not None


DEFAULT_RULES: tuple[InfraRule, ...] = tuple(
    InfraRule(pattern=pattern, category=category)
    for pattern, category in (
        (r"package(-lock)?\.json$", "Dependencies"),
        (r"(^|/)(pyproject\.toml|requirements[^/]*\.txt|poetry\.lock|uv\.lock)$", "Dependencies"),
        (r"\.env(\..*)?$", "Config"),
        (r".*config.*\.(js|json|yml|yaml|toml)$", "Config"),
        (r"Dockerfile$", "Build"),
        (r"docker-compose\.(yml|yaml)$", "Build"),
        (r"\.github/workflows/", "Build"),
        (r"\.gitlab-ci\.yml$", "Build"),
        (r"tsconfig\.json$", "Build"),
        (r"\.eslintrc", "Build"),
        (r"\.prettierrc", "Build"),
        (r"migrations?/", "Database"),
        (r"(routes?|api)/", "API"),
    )
)


def load_rules(path: Path | None) -> tuple[InfraRule, ...]:
    """Return YAML rules from ``path`` followed by the built-in rules.

    The file holds either a list of ``{pattern, category}`` mappings or a
    mapping with a ``rules`` key. A missing file yields the built-ins only.
    """

    if path is None or not Path(path).exists():
        return DEFAULT_RULES

    try:
        document = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise InfraRulesLoadError(f"Failed to parse YAML in {path}: {exc}") from exc

    if document is None:
        return DEFAULT_RULES
    if isinstance(document, dict):
        document = document.get("rules", [])
    if not isinstance(document, list):
        raise InfraRulesLoadError(f"{path} must contain a list of rules")

    rules: list[InfraRule] = []
    errors: list[str] = []
    for index, entry in enumerate(document):
        try:
            rules.append(InfraRule.model_validate(entry))
        except ValidationError as exc:
            errors.append(f"Rule {index} in {path}: {exc}")
    if errors:
        raise InfraRulesLoadError("; ".join(errors))

    return (*rules, *DEFAULT_RULES)


__all__ = ["DEFAULT_RULES", "InfraRule", "InfraRulesLoadError", "load_rules"]
