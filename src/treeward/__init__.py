"""Treeward - a chat agent whose file tools cannot leave one directory."""

from __future__ import annotations

__version__ = "0.1.0"
