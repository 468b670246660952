"""
Registry tag pruner.

Deletes image tags from a Docker Registry HTTP API V2 server by evaluating
select/except pattern rules against each repository's live tag list.
"""

__version__ = "0.1.0"
