from .default_tools import default_registry, default_tools, estimate_shipping_cost
from .registry import Tool, ToolContext, ToolRegistry

__all__ = [
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "default_registry",
    "default_tools",
    "estimate_shipping_cost",
]
