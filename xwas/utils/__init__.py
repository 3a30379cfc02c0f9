"""
Shared data structures, statistics and error types
"""
