"""OAuth 2.1 + PKCE authorization for MCP tool servers.

Two FastAPI applications share this package:

- the Authorization Server (``notesauth.api.serve.create_auth_app``)
- the Resource Server guarding MCP tools (``notesauth.api.serve.create_resource_app``)
"""

__version__ = "0.1.0"
