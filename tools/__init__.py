# =============================================================================
# tools/__init__.py
# =============================================================================
# This package contains the FastMCP server that exposes core/ as MCP tools,
# resources and prompts.
#
# Each tool here:
#   1. Logs the incoming call
#   2. Calls one operation from core/search.py with the shared AppContext
#   3. Converts ActivityApiError into a structured error dict
#   4. Logs and returns the response dict (JSON text to the caller)
#
# The tools do NOT hold state and do NOT talk to the upstream API
# themselves; both live in core/.
# =============================================================================
