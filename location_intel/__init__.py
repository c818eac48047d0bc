"""
Location intelligence and concept viability engine.

Aggregates open and commercial data sources around a point in the
Netherlands and scores how well a hospitality concept would fit there.
"""

__version__ = "0.1.0"
