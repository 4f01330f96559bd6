"""
Startup error types.
"""


class InvalidArgumentError(ValueError):
    """An override was given an empty or otherwise unusable value."""

    def __init__(self, argument: str):
        super().__init__(f"Invalid value for argument: {argument}")
        self.argument = argument
