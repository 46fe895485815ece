"""
PSGC reference geography (region -> province -> city/municipality).
"""
