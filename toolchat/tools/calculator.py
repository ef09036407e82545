"""Calculator tool."""

from pydantic import BaseModel, Field

from toolchat.tools.base import ToolContext, ToolDefinition
from toolchat.tools.expression import evaluate


class CalculatorInput(BaseModel):
    """Input schema for the calculator tool."""

    expression: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description='The mathematical expression to evaluate (e.g., "2 + 2", "10 * 5", "sqrt(16)")',
        examples=["2 + 2", "10 * 5", "sqrt(16)"],
    )


async def calculator_handler(params: CalculatorInput, context: ToolContext) -> str:  # noqa: RUF029
    return evaluate(params.expression)


def create_calculator_tool() -> ToolDefinition:
    return ToolDefinition(
        name="calculator",
        description=(
            "Evaluates mathematical expressions. Use this for any math calculations, "
            "arithmetic operations, or solving equations. Supports + - * / % **, parentheses, "
            "sqrt, abs, round, floor, ceil, sin, cos, tan, log, exp, pow and the constants PI and E."
        ),
        input_schema_class=CalculatorInput,
        handler=calculator_handler,
    )
