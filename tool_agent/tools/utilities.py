"""
Small local utilities: addition, random numbers, and the current time.
"""

import math
import random
from datetime import datetime
from typing import Union

from pydantic import Field

from .registry import ToolInput, ToolSpec


def format_number(value: Union[int, float]) -> str:
    """Render a number the way a user expects: 5.0 -> "5", 2.5 -> "2.5"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class AdditionInput(ToolInput):
    a: float = Field(description="The first number to add.")
    b: float = Field(description="The second number to add.")


class RandomNumberInput(ToolInput):
    minimum: float = Field(alias="min", description="The minimum value (inclusive).")
    maximum: float = Field(alias="max", description="The maximum value (inclusive).")


class CurrentTimeInput(ToolInput):
    pass


async def add_numbers(args: AdditionInput) -> str:
    return format_number(args.a + args.b)


async def random_number(args: RandomNumberInput) -> str:
    """Pick a uniformly distributed integer in [min, max]."""
    if args.minimum > args.maximum:
        raise ValueError("Invalid range: min must be less than or equal to max.")

    low, high = math.ceil(args.minimum), math.floor(args.maximum)
    if low > high:
        raise ValueError(
            f"Invalid range: there is no integer between {format_number(args.minimum)} "
            f"and {format_number(args.maximum)}."
        )
    return str(random.randint(low, high))


async def current_time(args: CurrentTimeInput) -> str:
    return datetime.now().strftime("%H:%M:%S")


def create_utility_tools() -> list[ToolSpec]:
    return [
        ToolSpec(
            name="additionTool",
            description="Adds two numbers together.",
            input_model=AdditionInput,
            implementation=add_numbers,
        ),
        ToolSpec(
            name="randomNumberTool",
            description=(
                "Generates a random integer between the specified min and max "
                "values (both inclusive)."
            ),
            input_model=RandomNumberInput,
            implementation=random_number,
        ),
        ToolSpec(
            name="currentTime",
            description="Returns the current local time in HH:MM:SS format.",
            input_model=CurrentTimeInput,
            implementation=current_time,
        ),
    ]
