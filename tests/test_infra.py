from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from dayshift.message import (
    DEFAULT_RULES,
    InfraRulesLoadError,
    append_changelog,
    augment_message,
    classify,
    load_rules,
)
from dayshift.message.infra import CHANGELOG_MARKER


def test_classify_first_matching_rule_wins() -> None:
    report = classify(["package.json", "src/app.py", "db/migrations/001.sql", "src/api/users.py"])

    assert [(f.file, f.category) for f in report.files] == [
        ("package.json", "Dependencies"),
        ("db/migrations/001.sql", "Database"),
        ("src/api/users.py", "API"),
    ]
    assert report.categories == {"Dependencies", "Database", "API"}
    assert report.summary == "Infrastructure changes detected in: API, Database, Dependencies"


def test_classify_without_infra_files() -> None:
    report = classify(["src/app.py", "README.md"])

    assert not report.has_infra_changes
    assert report.summary == ""


def test_infra_change_rewrites_header_and_appends_file_list() -> None:
    report = classify(["package.json", "src/app.py"])

    message = augment_message("feat: add lodash dependency\n\nNeeded for deep merges.", report)

    lines = message.splitlines()
    assert lines[0] == "infra: add lodash dependency"
    assert "Needed for deep merges." in message
    assert message.endswith("Infrastructure changes:\n- package.json (Dependencies)")


def test_header_without_type_gets_infra_prefix() -> None:
    report = classify(["Dockerfile"])

    assert augment_message("bump base image", report).startswith("infra: bump base image\n\n")


def test_non_infra_message_passes_through() -> None:
    report = classify(["src/app.py"])
    message = "fix(core): correct X\n\nDetails."

    assert augment_message(message, report) == message


def test_existing_infra_message_is_unchanged() -> None:
    report = classify(["docker-compose.yml"])

    assert augment_message("infra: tune compose", report) == "infra: tune compose"


def test_changelog_is_created_and_entries_stack_above_marker(tmp_path: Path) -> None:
    doc = tmp_path / "Documentation" / "infrastructure.md"
    first = classify(["package.json"])
    second = classify([".github/workflows/ci.yml"])

    append_changelog(doc, first, "infra: add lodash", author="agent-1", on=date(2025, 1, 2))
    append_changelog(doc, second, "infra: ci cache", author="agent-2", on=date(2025, 1, 3))

    content = doc.read_text(encoding="utf-8")
    assert content.startswith("# Infrastructure Change Log")
    assert content.count(CHANGELOG_MARKER) == 1
    assert content.index("## 2025-01-02 - agent-1") < content.index("## 2025-01-03 - agent-2")
    assert content.index("## 2025-01-03 - agent-2") < content.index(CHANGELOG_MARKER)
    assert "**Description**: infra: ci cache" in content
    assert "- .github/workflows/ci.yml" in content


def test_load_rules_missing_file_returns_defaults(tmp_path: Path) -> None:
    assert load_rules(None) == DEFAULT_RULES
    assert load_rules(tmp_path / "absent.yml") == DEFAULT_RULES


def test_load_rules_from_yaml_take_precedence(tmp_path: Path) -> None:
    rules_file = tmp_path / "infra.yml"
    rules_file.write_text(
        "rules:\n"
        "  - pattern: '^terraform/'\n"
        "    category: Terraform\n"
        "  - pattern: 'package\\.json$'\n"
        "    category: Node\n",
        encoding="utf-8",
    )

    rules = load_rules(rules_file)

    assert len(rules) == len(DEFAULT_RULES) + 2
    report = classify(["terraform/main.tf", "package.json"], rules)
    assert [(f.file, f.category) for f in report.files] == [
        ("terraform/main.tf", "Terraform"),
        ("package.json", "Node"),
    ]


def test_load_rules_accepts_plain_list(tmp_path: Path) -> None:
    rules_file = tmp_path / "infra.yml"
    rules_file.write_text("- pattern: 'helm/'\n  category: Deploy\n", encoding="utf-8")

    assert load_rules(rules_file)[0].category == "Deploy"


@pytest.mark.parametrize(
    "content",
    [
        "rules: [unclosed\n",
        "rules: just-a-string\n",
        "- pattern: '('\n  category: Broken\n",
        "- pattern: 'x'\n  category: '  '\n",
    ],
)
def test_load_rules_rejects_invalid_files(tmp_path: Path, content: str) -> None:
    rules_file = tmp_path / "infra.yml"
    rules_file.write_text(content, encoding="utf-8")

    with pytest.raises(InfraRulesLoadError):
        load_rules(rules_file)
