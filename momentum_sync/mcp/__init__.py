"""MCP tool server"""
