# MCP resource server: tool policies, bearer guard, request-scoped auth context
# and the JSON-RPC tool dispatcher.
