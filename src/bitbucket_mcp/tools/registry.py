"""Toolset registry for managing available toolsets."""

import logging
from typing import Dict, List, Optional, Type

from .base import BaseToolset

logger = logging.getLogger(__name__)


class ToolsetRegistry:
    """Registry for toolset classes.

    Classes are registered at import time; instances are created per
    application context by ``create_toolsets``.
    """

    def __init__(self):
        self._toolset_classes: Dict[str, Type[BaseToolset]] = {}

    def register(self, name: str, toolset_class: Type[BaseToolset]):
        """Register a toolset class under its name (its tool prefix)."""
        if name in self._toolset_classes and self._toolset_classes[name] is not toolset_class:
            raise ValueError(f"Toolset already registered: {name}")
        self._toolset_classes[name] = toolset_class
        logger.debug("Registered toolset: %s (%s)", name, toolset_class.__name__)

    def get_toolset_class(self, name: str) -> Optional[Type[BaseToolset]]:
        return self._toolset_classes.get(name)

    def list_toolsets(self) -> List[str]:
        """List all registered toolset names."""
        return list(self._toolset_classes.keys())

    def create_toolsets(self, context) -> List[BaseToolset]:
        """Instantiate every toolset enabled by ``context.settings``."""
        toolsets = []
        for name, toolset_class in self._toolset_classes.items():
            if not toolset_class.is_enabled(context.settings):
                logger.info("Toolset %s disabled by configuration", name)
                continue
            toolsets.append(toolset_class(context))
        return toolsets


# Global toolset registry instance
toolset_registry = ToolsetRegistry()


def register_toolset(name: str):
    """Decorator to register a toolset."""
    def decorator(toolset_class: Type[BaseToolset]):
        toolset_registry.register(name, toolset_class)
        return toolset_class
    return decorator
