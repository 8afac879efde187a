"""
aios-pro core library.

This package contains the core functionality:
- licensing: machine identity, sealed cache, authority client, feature gates
"""

__all__: list[str] = []
