"""
Dose Module
===========

Pure dose math and predictive insight.

Components:
    - DoseCalculator: Exchange-rate dose, remaining time, safe level
    - InsightGenerator: Burn rate, ETA to limit, insight classification
    - DigestGenerator: Weekly summary over stored daily records

Example:
    from hearing_dose.dose import DoseCalculator, InsightGenerator

    calculator = DoseCalculator()
    insight = InsightGenerator(calculator).generate_insight(dose, recent, now)
"""

from hearing_dose.dose.calculator import DoseCalculator, format_duration, span_seconds
from hearing_dose.dose.insight import InsightGenerator
from hearing_dose.dose.digest import DigestGenerator


__all__ = [
    "DoseCalculator",
    "DigestGenerator",
    "InsightGenerator",
    "format_duration",
    "span_seconds",
]
