"""Agent layer for the spreadsheet assistant.

Lazy imports to prevent circular dependency:
data_ops.* → agent.errors → agent.__init__ → agent.core → data_ops.*
"""


def __getattr__(name: str):
    if name in ("DialogueController", "create_controller"):
        from .core import DialogueController, create_controller
        return DialogueController if name == "DialogueController" else create_controller
    if name in ("TOOLS", "get_function_schemas"):
        from .tools import TOOLS, get_function_schemas
        return TOOLS if name == "TOOLS" else get_function_schemas
    if name == "get_system_prompt":
        from .prompts import get_system_prompt
        return get_system_prompt
    raise AttributeError(f"module 'agent' has no attribute {name!r}")
