"""
kafkaview Python package.

This package hosts the multi-provider Kafka overview engine: the provider
registry, query construction, result normalization, health classification and
table assembly, plus the adapters and server surfaces that drive them.
"""

from .__version__ import __version__

__all__ = ["__version__"]
