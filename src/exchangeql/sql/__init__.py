"""SQL synthesis and guardrails."""

from exchangeql.sql.guardrails import SafetyValidator, ValidationVerdict, validate_sql
from exchangeql.sql.templates import SqlSynthesizer, SynthesizedQuery

__all__ = ["SafetyValidator", "SqlSynthesizer", "SynthesizedQuery", "ValidationVerdict", "validate_sql"]
