"""Maestro: conversation orchestration for computer-use chat sessions."""

__version__ = "0.1.0"
