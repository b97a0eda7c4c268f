"""
IDTIX In-Memory Adapter
=========================
"""

from adapters.in_memory.wiring import IdtixSystem, build_system, restore_system

__all__ = [
    "IdtixSystem",
    "build_system",
    "restore_system",
]
