# Obsidian MCP Gateway
#
# Modular package structure:
# - config.py: Settings and SecurityPolicy (pydantic-settings, YAML file)
# - logging.py: structlog configuration
# - models.py: JSON-RPC envelope, tool call, audit and admission models
# - ratelimit.py: Per-client sliding window rate limiter
# - security.py: Access gate (IP allow-list, bearer token, rate limit, CORS)
# - validation.py: Content type/body size checks, path validation, sanitization
# - audit.py: Audit sink
# - vault.py: VaultClient for the Obsidian Local REST API
# - tools.py: Tool catalogue and per-tool execution
# - protocol.py: JSON-RPC dispatcher
# - http_app.py: Starlette HTTP transport
# - stdio.py: Line-delimited stdio transport
# - main.py: Entry point and server initialization
