from simtrader.analysis.performance import PerformanceStats, analyze
from simtrader.analysis.report import build_report, format_summary, write_report

__all__ = ["PerformanceStats", "analyze", "build_report", "format_summary", "write_report"]
