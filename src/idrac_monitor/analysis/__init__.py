"""Reading classification."""

from idrac_monitor.analysis.classifier import DEFAULT_THRESHOLDS, Thresholds, classify

__all__ = ["DEFAULT_THRESHOLDS", "Thresholds", "classify"]
