"""
Mathematical Expression Solver

Safely evaluates mathematical expressions using SymPy's parser.
Supports scientific calculator syntax including:
- Factorial notation: 5!
- Caret exponentiation: 2^16
- Degree notation: sin(30 degrees)
"""

import asyncio
import logging
import re
from typing import Union

from pydantic import Field
from sympy import N
from sympy.parsing.sympy_parser import (
    parse_expr,
    standard_transformations,
    implicit_multiplication_application,
    convert_xor,
    factorial_notation,
)

from .registry import ToolInput, ToolSpec

logger = logging.getLogger(__name__)

TRANSFORMATIONS = (
    standard_transformations
    + (implicit_multiplication_application,)
    + (convert_xor,)  # 2^16 -> 2**16
    + (factorial_notation,)  # 5! -> factorial(5)
)

Number = Union[int, float, complex]


def preprocess_expression(expression: str) -> str:
    """
    Preprocess expression for SymPy compatibility.

    Handles:
        - Degree notation: sin(30 degrees) -> sin(30 * pi / 180)
        - ceil function: ceil(x) -> ceiling(x) (SymPy naming)
    """
    degree_pattern = r"(\d+(?:\.\d+)?)\s*(?:degrees?|deg)\b"
    expression = re.sub(degree_pattern, r"(\1 * pi / 180)", expression, flags=re.IGNORECASE)
    return re.sub(r"\bceil\b", "ceiling", expression)


def evaluate_expression(expression: str) -> Number:
    """
    Evaluate a mathematical expression numerically.

    Args:
        expression: Expression such as "2^10", "sqrt(144)" or "sin(30 degrees)".

    Returns:
        An int for whole results, a float for real ones, complex otherwise.

    Raises:
        ValueError: If the expression is empty, malformed, or not numeric.
    """
    if not expression or not expression.strip():
        raise ValueError('Expression is empty. Provide a math expression such as "2+2".')

    try:
        expr = parse_expr(
            preprocess_expression(expression),
            transformations=TRANSFORMATIONS,
            evaluate=True,
        )
        result: Number = complex(N(expr))
    except SyntaxError as e:
        logger.debug("Syntax error parsing expression '%s': %s", expression, e)
        raise ValueError(f"Syntax error in expression '{expression}'") from e
    except (TypeError, ValueError) as e:
        logger.debug("Cannot evaluate '%s': %s", expression, e)
        raise ValueError(f"Cannot evaluate '{expression}' to a number: {e}") from e

    if result.imag == 0:
        result = result.real
    if isinstance(result, float) and result.is_integer():
        result = int(result)
    return result


class CalculateInput(ToolInput):
    expression: str = Field(description="Math expression like 2+2, 2^10 or sqrt(16).")


async def calculate(args: CalculateInput) -> str:
    # SymPy work runs off the event loop.
    result = await asyncio.to_thread(evaluate_expression, args.expression)
    return f"{args.expression} = {result}"


def create_math_tools() -> list[ToolSpec]:
    return [
        ToolSpec(
            name="calculate",
            description=(
                "Perform mathematical calculations: arithmetic, powers, "
                "factorials, trigonometry, roots and logarithms."
            ),
            input_model=CalculateInput,
            implementation=calculate,
        )
    ]
