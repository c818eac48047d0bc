"""
Location data providers.

Each provider fetches one kind of data for a point and radius and
returns None instead of raising when its source is unavailable.
"""
