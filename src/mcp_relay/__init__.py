"""
MCP Relay - relay TCP et superviseur de processus pour serveurs MCP distants.
"""

__version__ = "1.0.0"
