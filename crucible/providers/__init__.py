"""
Crucible Providers - Built-in resource kinds.
"""

from crucible.providers.random import RandomString, RandomStringProps

__all__ = ["RandomString", "RandomStringProps"]
