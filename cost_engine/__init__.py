"""
Cost Control & Forecasting Engine.

Budget planning, actual cost ledger, variance analysis, multi-method
forecasting, cost alerts and control strategy recommendations.
"""

__version__ = "1.0.0"
