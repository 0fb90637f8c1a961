"""Shared support tools resolved against CodeGame/CGE versions."""

from .resolver import CG_DEBUG, CGE_PARSER, ComponentResolver

__all__ = ["CG_DEBUG", "CGE_PARSER", "ComponentResolver"]
