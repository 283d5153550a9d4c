from .base import ActivitySource, FallbackActivitySource
from .sqlite import SQLiteActivitySource
from .xcresulttool import XCResultToolSource, flatten_tool_activities

__all__ = [
    "ActivitySource",
    "FallbackActivitySource",
    "SQLiteActivitySource",
    "XCResultToolSource",
    "flatten_tool_activities",
]
