"""
Data Transform Node Executors - Data manipulation and transformation
"""

from typing import Any, Dict, Literal, Optional
import math

from pydantic import Field

from ..expressions import (
    UNDEFINED,
    evaluate_condition,
    evaluate_expression,
    render_template,
    to_number,
)
from ..models import NodeResult
from .base import NodeConfig, NodeExecutor, ExecutionContext, as_mapping


class SetVariableConfig(NodeConfig):
    name: str = Field(..., min_length=1)
    value: str = ""


class SetVariableExecutor(NodeExecutor):
    """Store a value in the run's variables"""

    node_type = "set_variable"
    display_name = "Set Variable"
    category = "data"
    description = "Save a value for later nodes"
    config_model = SetVariableConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        scope = {**context.variables_snapshot(), "data": input_data}
        value = evaluate_expression(self.config.value, scope)
        if value is UNDEFINED:
            value = None

        context.set_variable(self.config.name, value)
        context.log(f"Set variable '{self.config.name}'")

        return NodeResult.ok({**as_mapping(input_data), self.config.name: value})


class MapFieldsConfig(NodeConfig):
    mapping: Dict[str, str] = Field(default_factory=dict)


class MapFieldsExecutor(NodeExecutor):
    """Rename fields of the input object"""

    node_type = "map_fields"
    display_name = "Map Fields"
    category = "data"
    description = "Copy input fields to new names"
    config_model = MapFieldsConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        source = as_mapping(input_data)
        output: Dict[str, Any] = {}

        for old_key, new_key in self.config.mapping.items():
            if old_key in source:
                output[new_key] = source[old_key]

        context.log(f"Mapped {len(output)}/{len(self.config.mapping)} fields")
        return NodeResult.ok(output)


class FilterConfig(NodeConfig):
    arrayField: str = ""
    condition: str = ""


class FilterExecutor(NodeExecutor):
    """Filter array items"""

    node_type = "filter"
    display_name = "Array Filter"
    category = "data"
    description = "Filter items based on condition"
    config_model = FilterConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        items = evaluate_expression(self.config.arrayField, {"data": input_data})
        if not isinstance(items, list):
            return NodeResult.fail(f"{self.config.arrayField} is not an array")

        results = [
            item for item in items
            if evaluate_condition(self.config.condition, {"item": item, "data": input_data})
        ]

        context.log(f"Filtered {len(items)} items to {len(results)}")
        return NodeResult.ok(results)


class AggregateConfig(NodeConfig):
    arrayField: str = ""
    operation: Literal["sum", "count", "avg", "min", "max"] = "count"
    field: Optional[str] = None


class AggregateExecutor(NodeExecutor):
    """Reduce an array to a single number"""

    node_type = "aggregate"
    display_name = "Aggregate"
    category = "data"
    description = "Sum, count, average, min or max over an array"
    config_model = AggregateConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        items = evaluate_expression(self.config.arrayField, {"data": input_data})
        if not isinstance(items, list):
            return NodeResult.fail(f"{self.config.arrayField} is not an array")

        if self.config.field:
            values = [to_number(as_mapping(item).get(self.config.field)) for item in items]
        else:
            values = [to_number(item) for item in items]

        operation = self.config.operation
        if operation == "count":
            result = len(items)
        elif operation == "sum":
            result = sum(values)
        elif operation == "avg":
            result = sum(values) / len(values) if values else 0
        elif any(math.isnan(value) for value in values):
            # Any non-numeric value makes min/max NaN
            result = math.nan
        elif operation == "min":
            result = min(values) if values else 0
        else:
            result = max(values) if values else 0

        if isinstance(result, float) and math.isnan(result):
            context.log(f"Aggregate '{operation}' hit non-numeric values", level="warning")

        return NodeResult.ok({
            "result": result,
            "operation": operation,
            "count": len(items),
        })


class TemplateConfig(NodeConfig):
    template: str = ""


class TemplateExecutor(NodeExecutor):
    """Render template with input fields"""

    node_type = "template"
    display_name = "Template"
    category = "data"
    description = "Render {{field}} placeholders from the input"
    config_model = TemplateConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        output = render_template(self.config.template, as_mapping(input_data))
        context.log(f"Rendered template ({len(output)} chars)")
        return NodeResult.ok(output)
