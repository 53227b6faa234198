"""
SCML - Content library security auditor.

Crawls hash-addressed software-distribution content libraries, rebuilds the
human-readable file inventory, retrieves files of interest and scores them
for sensitive material.
"""

__version__ = "0.3.0"
