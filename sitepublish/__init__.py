"""
sitepublish — publish function for a git-backed static website.

Mirrors the tree of a pushed commit into the website bucket, serialized
per site, inside the invocation's time budget, and reports the outcome
back to the pipeline that invoked it.
"""

__version__ = "1.0.0"
