"""
Collector Dues Statistics

Aggregates member and payment-request records into per-collector dues
statistics, with Decimal money math, a per-collector snapshot cache and
structured logging.
"""

__version__ = "1.0.0"
