"""
Tool definitions for LLM function calling.

Each tool schema defines what the model can call and what parameters it needs.
Tools are executed by the dispatch registry (agent/tool_handlers) based on the
model's decision. Phase 1 (data selection) sees only SELECTION_TOOL_NAMES;
phase 2 (analysis) sees every tool.
"""

TOOLS = [
    {
        "name": "set_spreadsheet_cells",
        "description": """Set values or formulas on specific spreadsheet cells. Use this when:
- The user asks to fill in, compute, or write values into the sheet
- A formula (e.g. =SUM(B2:B10)) answers the question better than prose

Each update names a target cell in A1 notation and the formula or literal value to place there.""",
        "parameters": {
            "type": "object",
            "properties": {
                "cellUpdates": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "formula": {"type": "string"},
                            "target": {"type": "string"},
                            "sheetName": {
                                "type": "string",
                                "description": "Optional. The sheet to update. Defaults to the active sheet."
                            },
                        },
                        "required": ["formula", "target"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["cellUpdates"]
        }
    },
    {
        "name": "select_data_for_analysis",
        "description": """Select the most relevant data for analysis based on the user query.

Pick exactly one selection kind: a range ('A1:C10'), a whole column ('F'), a row (1-based),
a table anchored at its top-left cell, or a search term. Explain why this data answers the question.""",
        "parameters": {
            "type": "object",
            "properties": {
                "analysisType": {
                    "type": "string",
                    "enum": ["statistical", "trend", "summary", "forecast", "comparison", "custom"],
                    "description": "The type of analysis that needs to be performed"
                },
                "dataSelection": {
                    "type": "object",
                    "properties": {
                        "selectionType": {
                            "type": "string",
                            "enum": ["range", "column", "row", "table", "search"],
                            "description": "The type of data selection to perform"
                        },
                        "range": {
                            "type": "string",
                            "description": "A cell range in A1 notation (e.g., 'A1:C10'). Required if selectionType is 'range'."
                        },
                        "column": {
                            "type": "string",
                            "description": "Column reference (e.g., 'A'). Required if selectionType is 'column'."
                        },
                        "row": {
                            "type": "number",
                            "description": "Row number (1-based). Required if selectionType is 'row'."
                        },
                        "tableStartCell": {
                            "type": "string",
                            "description": "Top-left cell of the table in A1 notation. Required if selectionType is 'table'."
                        },
                        "hasHeaders": {
                            "type": "boolean",
                            "description": "Whether the table has headers. Only relevant if selectionType is 'table'."
                        },
                        "searchTerm": {
                            "type": "string",
                            "description": "Term to search for in the spreadsheet. Required if selectionType is 'search'."
                        },
                    },
                    "required": ["selectionType"]
                },
                "explanation": {
                    "type": "string",
                    "description": "Explanation of why this data selection is relevant to the user's query"
                }
            },
            "required": ["analysisType", "dataSelection", "explanation"]
        }
    },
    {
        "name": "analyze_spreadsheet_structure",
        "description": "Analyze the structure of the active spreadsheet to decide how much of it is needed to answer the user's query.",
        "parameters": {
            "type": "object",
            "properties": {
                "scopeNeeded": {
                    "type": "string",
                    "enum": ["full", "minimal", "auto"],
                    "description": "The scope of analysis needed to answer the user's query"
                },
                "explanation": {
                    "type": "string",
                    "description": "Explanation of why this type of analysis is needed"
                }
            },
            "required": ["scopeNeeded"]
        }
    },
    {
        "name": "create_chart",
        "description": """Create a chart from spreadsheet data. Use this when the user asks to plot, chart, graph or visualize data.

The data is a 2D array whose first row holds the headers.""",
        "parameters": {
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "enum": ["line", "bar", "pie", "scatter"],
                    "description": "The type of chart to create"
                },
                "title": {
                    "type": "string",
                    "description": "The title of the chart"
                },
                "data": {
                    "type": "array",
                    "items": {"type": "array", "items": {"type": ["string", "number"]}},
                    "description": "The data for the chart, first row should contain headers"
                },
                "sheetName": {
                    "type": "string",
                    "description": "Optional. The name of the sheet the data is from. For reference only."
                }
            },
            "required": ["type", "title", "data"]
        }
    },
    {
        "name": "execute_python_code",
        "description": """Execute Python code for complex data analysis and return the results as cell updates.

The selected data is preloaded as a pandas DataFrame named `df` (pandas as `pd`, numpy as `np`).
Print the results; printed output is turned into a table and written starting at start_cell.
Execution is limited to a few seconds and has no network or file access.""",
        "parameters": {
            "type": "object",
            "properties": {
                "analysis_goal": {
                    "type": "string",
                    "description": "Description of what the analysis aims to achieve"
                },
                "suggested_code": {
                    "type": "string",
                    "description": "Python code to execute the analysis"
                },
                "start_cell": {
                    "type": "string",
                    "description": "Start cell reference (e.g., 'A1') where the results should begin."
                },
                "sheetName": {
                    "type": "string",
                    "description": "Optional. The sheet to place results on. Defaults to the active sheet."
                }
            },
            "required": ["analysis_goal", "suggested_code", "start_cell"]
        }
    },
    {
        "name": "get_sheet_info",
        "description": "Get information about available sheets and the active sheet.",
        "parameters": {
            "type": "object",
            "properties": {},
            "required": []
        }
    },
    {
        "name": "add_sheet",
        "description": "Add a new sheet to the spreadsheet.",
        "parameters": {
            "type": "object",
            "properties": {
                "sheetName": {
                    "type": "string",
                    "description": "The name of the new sheet to add"
                }
            }
        }
    },
    {
        "name": "remove_sheet",
        "description": "Remove an existing sheet.",
        "parameters": {
            "type": "object",
            "properties": {
                "sheetName": {
                    "type": "string",
                    "description": "The name of the sheet to remove"
                }
            },
            "required": ["sheetName"]
        }
    },
    {
        "name": "rename_sheet",
        "description": "Rename an existing sheet.",
        "parameters": {
            "type": "object",
            "properties": {
                "currentName": {
                    "type": "string",
                    "description": "The current name of the sheet to rename"
                },
                "newName": {
                    "type": "string",
                    "description": "The new name for the sheet"
                }
            },
            "required": ["currentName", "newName"]
        }
    },
    {
        "name": "clear_sheet",
        "description": "Clear all data from a sheet.",
        "parameters": {
            "type": "object",
            "properties": {
                "sheetName": {
                    "type": "string",
                    "description": "The name of the sheet to clear. If not provided, the active sheet will be cleared."
                }
            },
            "required": []
        }
    },
    {
        "name": "document_analysis",
        "description": """Extract and analyze information from an uploaded document image (receipts, invoices, tables, etc.).

Only available when the user attached a document. Extracted rows are written starting at start_cell.""",
        "parameters": {
            "type": "object",
            "properties": {
                "operation": {
                    "type": "string",
                    "enum": ["extract_data", "extract_text", "extract_table", "analyze_receipt", "analyze_invoice"],
                    "description": "The type of extraction or analysis to perform on the document"
                },
                "target_sheet": {
                    "type": "string",
                    "description": "Optional. The sheet where extracted data should be placed. Defaults to the active sheet."
                },
                "start_cell": {
                    "type": "string",
                    "description": "The cell reference (e.g., 'A1') where extracted data should start."
                }
            },
            "required": ["operation", "start_cell"]
        }
    },
]

SELECTION_TOOL_NAMES = ["select_data_for_analysis", "analyze_spreadsheet_structure"]
SELECTION_TOOL = "select_data_for_analysis"


def _build_full_tool_reference() -> str:
    """Build a formatted reference of all tools with full descriptions."""
    lines = []
    for t in TOOLS:
        lines.append(f"### {t['name']}")
        lines.append(t["description"])
        lines.append("")
    return "\n".join(lines)


FULL_TOOL_REFERENCE = _build_full_tool_reference()


def get_tool_schemas(names: list[str] | None = None) -> list[dict]:
    """Return tool schemas for LLM function calling.

    Args:
        names: Optional list of tool names to include.
            If None, returns all tools.

    Returns:
        List of tool schema dicts.
    """
    if names is None:
        return list(TOOLS)
    wanted = set(names)
    return [t for t in TOOLS if t["name"] in wanted]


def get_function_schemas(names: list[str] | None = None) -> "list[FunctionSchema]":
    """Return tool schemas as ``FunctionSchema`` objects ready for LLM adapters.

    Args:
        names: Optional list of tool names to include.
            If None, returns all tools.
    """
    from .llm.base import FunctionSchema
    return [
        FunctionSchema(
            name=ts["name"],
            description=ts["description"],
            parameters=ts["parameters"],
        )
        for ts in get_tool_schemas(names=names)
    ]
