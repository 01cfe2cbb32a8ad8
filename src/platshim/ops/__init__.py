"""
Platshim Operations

Abstracted operations built on the platform context.
"""

from platshim.ops.base import execute, resolve_context, wrap_privileged

__all__ = [
    'execute',
    'resolve_context',
    'wrap_privileged',
]
