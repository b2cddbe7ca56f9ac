"""
Shared data structures, configuration and snapshot I/O.
"""
