"""
Module: config
Description: Client configuration, reserved keys and offload criteria.
"""

__all__ = []
