# =============================================================================
# core/__init__.py
# =============================================================================
# This package contains ALL the logic of the Active Network activities server:
# the upstream API client, request normalization, the result cache, search
# history/analytics, preferences, task records and the operations that tie
# them together.
#
# Nothing in this package imports FastMCP.  The tools/ layer wraps these
# operations as MCP tools.
# =============================================================================
