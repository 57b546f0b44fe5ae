"""
Template name constants.

Pure constants - no I/O or file system knowledge.
"""


class Template:
    """Template name constants. Use these instead of raw strings."""

    RESPONSE = "response"
    ROUTE_COMPLETION = "route_completion"
    ROUTE_SELECTION = "route_selection"
