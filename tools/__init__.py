"""
Command line tools for landmark residual snapshots.
"""
