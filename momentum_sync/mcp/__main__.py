"""Entry point for python -m momentum_sync.mcp"""
from momentum_sync.mcp.server import main

main()
