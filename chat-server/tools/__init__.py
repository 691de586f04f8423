from tools.registry import TOOL_DECLARATIONS, ToolInvoker, ToolName, ToolRouter, register_tools
from tools.variants import VariantResolver

__all__ = ["TOOL_DECLARATIONS", "ToolInvoker", "ToolName", "ToolRouter", "VariantResolver", "register_tools"]
