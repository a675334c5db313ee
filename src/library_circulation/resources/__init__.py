"""
MCP resources for the Library Circulation server.

Resources are read-only views; every state change goes through a tool.
"""

from .books import book_resources
from .readers import reader_resources
from .reports import report_resources

all_resources = book_resources + reader_resources + report_resources

__all__ = ["all_resources", "book_resources", "reader_resources", "report_resources"]
