"""Tool definitions for LLM function calling.

This module defines the four tools available to the transformation agent.
Tool names are a stable contract shared with the tool registry and clients:
- query_data: read up to 100 rows with a query
- generate_transformation_sql: turn instructions into a query
- create_transformation: materialize a query as the next dataset version
- generate_lines_chart: materialize a query as a lines chart
"""
from __future__ import annotations

from typing import Any, Dict, List

QUERY_DATA = "query_data"
GENERATE_TRANSFORMATION_SQL = "generate_transformation_sql"
CREATE_TRANSFORMATION = "create_transformation"
GENERATE_LINES_CHART = "generate_lines_chart"


AGENT_TOOLS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": QUERY_DATA,
            "description": (
                "Query the dataset data: execute a SQL query and return the result. "
                "Use this tool when you need data from the dataset to analyze. "
                "At most 100 rows are returned."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "sql": {"type": "string", "description": "The SQL query to execute to query the dataset data."},
                },
                "required": ["sql"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": GENERATE_TRANSFORMATION_SQL,
            "description": "Generate an SQL query to perform the requested transformation.",
            "parameters": {
                "type": "object",
                "properties": {
                    "instructions": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "The instructions to generate the SQL query.",
                    },
                },
                "required": ["instructions"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": CREATE_TRANSFORMATION,
            "description": (
                "Create a transformation in the database. On success the result holds newTableName, "
                "the table of the new dataset version with the transformation applied."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "sql": {"type": "string", "description": "The SQL query to create the transformation."},
                },
                "required": ["sql"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": GENERATE_LINES_CHART,
            "description": (
                "Generate a lines chart to visualize the dataset data. "
                "You give a SQL query that returns the data to visualize with the correct column names. "
                "The chart has an X axis and one line per entry of linesNames; the Y axis is derived from the data."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "title": {
                        "type": "string",
                        "description": "A descriptive and concise title for the chart, 13 words maximum.",
                    },
                    "sql": {
                        "type": "string",
                        "description": "The SQL query that returns the data to visualize with the correct column names.",
                    },
                    "xAxisName": {
                        "type": "string",
                        "description": "The name of the X axis; it must be a column name from the SQL query.",
                    },
                    "linesNames": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "The names of the lines to visualize; each must be a column name from the SQL query.",
                    },
                },
                "required": ["title", "sql", "xAxisName", "linesNames"],
            },
        },
    },
]
