"""
pescan Shared Module
====================

Configuration, logging, console and HTTP utilities shared by every
pescan component.
"""

from shared.config import PescanConfig

__all__ = ["PescanConfig"]
