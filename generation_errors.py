"""
Exceptions raised by the synthetic card data generator.

Capacity adjustments are not exceptions: they are logged as warnings and
recorded on the resolved RowPlan.
"""


class InputError(ValueError):
    """A sample, enum or config file is missing, empty or malformed."""


class AllocationDriftError(AssertionError):
    """An allocation did not conserve the requested row total."""

    def __init__(self, table_name: str, planned: int, requested: int):
        self.table_name = table_name
        self.planned = planned
        self.requested = requested
        super().__init__(
            f"{table_name} plan generated {planned} rows (requested {requested})"
        )
