"""Analytics package."""

from flow_finance.analytics.engine import AnalyticsEngine, flow_by, summarize_flow

__all__ = ["AnalyticsEngine", "flow_by", "summarize_flow"]
