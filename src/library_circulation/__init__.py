"""Library Circulation - borrowing, reservation and fine rules served over MCP."""

__version__ = "0.1.0"
