"""
Invocation of stack functions, remotely or against a local emulator.
"""

from .envelope import InvokeResult, unwrap_nested, unwrap_return_value
from .invoker import Invoker, LocalInvoker, RemoteInvoker, create_invoker

__all__ = [
    "InvokeResult",
    "Invoker",
    "LocalInvoker",
    "RemoteInvoker",
    "create_invoker",
    "unwrap_nested",
    "unwrap_return_value",
]
