"""
PrepZone practice and daily quiz engine.
"""
