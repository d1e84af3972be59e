"""
Ports consumed by the core: transform backend, authorizer and clock.
"""

from imgmod.core.ports.auth import AuthorizerPort
from imgmod.core.ports.clock import ClockPort
from imgmod.core.ports.transform import TransformError, TransformPort, UndecodableImageError

__all__ = [
    "AuthorizerPort",
    "ClockPort",
    "TransformError",
    "TransformPort",
    "UndecodableImageError",
]
