"""Commit message gating and infra change handling."""

from .gate import DEFAULT_MESSAGE_FILE, MessageGate, header_of
from .infra import InfraChangeReport, InfraFile, append_changelog, augment_message, classify
from .rules import DEFAULT_RULES, InfraRule, InfraRulesLoadError, load_rules

__all__ = [
    "DEFAULT_MESSAGE_FILE",
    "DEFAULT_RULES",
    "InfraChangeReport",
    "InfraFile",
    "InfraRule",
    "InfraRulesLoadError",
    "MessageGate",
    "append_changelog",
    "augment_message",
    "classify",
    "header_of",
    "load_rules",
]
