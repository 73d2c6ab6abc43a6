"""
clib-install: fetches C packages and their dependency trees into a project.
"""

__version__ = "0.1.0"
