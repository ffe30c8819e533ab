"""Application Layer.

Infrastructure adapters that back domain ports with real storage.
"""
