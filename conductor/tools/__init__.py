"""Tool registry, executor and built-in handlers."""

from .executor import CANCELLED_MESSAGE, IToolExecutor, IToolHandler, ToolExecutor
from .handlers import (
    BashCommandHandler,
    FileReadHandler,
    FileWriteHandler,
    ListFilesHandler,
    default_handlers,
)

__all__ = [
    "CANCELLED_MESSAGE",
    "IToolExecutor",
    "IToolHandler",
    "ToolExecutor",
    "BashCommandHandler",
    "FileReadHandler",
    "FileWriteHandler",
    "ListFilesHandler",
    "default_handlers",
]
