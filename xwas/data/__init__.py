"""
Dataset and data catalog loading
"""
