"""
parasync - sync a directory tree with parallel rsync jobs.
"""

__version__ = "0.1.0"
