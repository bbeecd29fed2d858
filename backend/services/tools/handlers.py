"""Concrete tool handler implementations.

One handler per agent tool. Handlers raise on failure; the registry turns
exceptions into ``{"success": False, "error": ...}`` results.
"""
from __future__ import annotations

from typing import Any, Dict, List

from loguru import logger
from pydantic import BaseModel, Field

from protocols import ToolResult
from services.charts import ChartService
from services.llm.tools import CREATE_TRANSFORMATION, GENERATE_LINES_CHART, GENERATE_TRANSFORMATION_SQL, QUERY_DATA
from services.tools.base import BaseToolHandler, ToolContext
from services.transformations import stringify

LINES_CHART_TYPE = "lines"


class SQLArguments(BaseModel):
    sql: str = Field(min_length=1)


class InstructionsArguments(BaseModel):
    instructions: List[str] = Field(min_length=1)


class LinesChartArguments(BaseModel):
    title: str = Field(min_length=1)
    sql: str = Field(min_length=1)
    xAxisName: str = Field(min_length=1)
    linesNames: List[str] = Field(min_length=1)


class QueryDataHandler(BaseToolHandler):
    """Run a read query and return at most ``QUERY_DATA_LIMIT`` rows as strings."""

    arguments_model = SQLArguments

    @property
    def name(self) -> str:
        return QUERY_DATA

    async def execute(self, context: ToolContext, arguments: Dict[str, Any]) -> ToolResult:
        args = self.parse_arguments(arguments)
        result = await context.pipeline().run_query(args.sql)
        data = [[stringify(value) for value in row] for row in result.as_lists()]
        return self._success(columns=result.columns, data=data)


class GenerateTransformationSqlHandler(BaseToolHandler):
    """Ask the SQL generator for a transformation query."""

    arguments_model = InstructionsArguments

    @property
    def name(self) -> str:
        return GENERATE_TRANSFORMATION_SQL

    async def execute(self, context: ToolContext, arguments: Dict[str, Any]) -> ToolResult:
        args = self.parse_arguments(arguments)
        sql = await context.pipeline().generate_transformation_sql(context.dataset_id, args.instructions)
        return self._success(sql=sql)


class CreateTransformationHandler(BaseToolHandler):
    """Apply a query as the dataset's next version."""

    arguments_model = SQLArguments

    @property
    def name(self) -> str:
        return CREATE_TRANSFORMATION

    async def execute(self, context: ToolContext, arguments: Dict[str, Any]) -> ToolResult:
        args = self.parse_arguments(arguments)
        result = await context.pipeline().apply_transformation(context.dataset_id, args.sql)
        if not result.success:
            return self._error(result.error or "Failed to create transformation")
        return self._success(newTableName=result.new_table_name, version=result.version)


class GenerateLinesChartHandler(BaseToolHandler):
    """Materialize a lines chart whose axes are columns of its query."""

    arguments_model = LinesChartArguments

    @property
    def name(self) -> str:
        return GENERATE_LINES_CHART

    async def execute(self, context: ToolContext, arguments: Dict[str, Any]) -> ToolResult:
        args = self.parse_arguments(arguments)
        charts = ChartService(context.session)
        chart = await charts.create_chart(
            context.dataset_id,
            args.title,
            args.sql,
            LINES_CHART_TYPE,
            {"xAxisName": args.xAxisName, "linesNames": list(args.linesNames)},
        )

        missing = [name for name in [args.xAxisName, *args.linesNames] if name not in chart.columns]
        if missing:
            await charts.delete_chart(chart.id)
            logger.warning("[Tools] Chart {} discarded, columns not in query result: {}", chart.id, missing)
            return self._error(
                f"Columns not found in the chart data: {', '.join(missing)}. "
                f"Available columns: {', '.join(chart.columns)}"
            )

        return self._success(chart={"id": chart.id, "tableName": chart.table_name})
