"""MCP server exposing the Fastalert alerting API behind a minimal OAuth layer."""
