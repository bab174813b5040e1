"""
Pricing integration: enhanced quotes, rule comparisons and scenario tests.
"""
