#!/usr/bin/env python3
"""
Run the orchestration MCP server in STDIO mode
Reads AZURE_DEVOPS_* settings from the environment or a .env file
"""
import logging
import os
import sys

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ado_orchestrator.server import mcp

if __name__ == "__main__":
    # stdout carries JSON-RPC; logs go to stderr
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    mcp.run()
