from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..exceptions import ConstructionError, DimensionMismatch
from ..matrix import RowEntries
from ..schemas import Column, Row, RowSense, Sense
from .builder import _index_names, check_bounds, check_row
from .instance import LPInstance

logger = logging.getLogger(__name__)


class ModelMutator:
    """
    In-place changes to a loaded instance.

    Appending rows keeps the instance's basis handle, so the next solve can
    start from it with the dual simplex. Every other change clears the handle.
    """

    @staticmethod
    def add_row(
        instance: LPInstance,
        sense: RowSense,
        rhs: float,
        coefficients: RowEntries,
        range_value: Optional[float] = None,
    ) -> int:
        "Append one constraint and return its ordinal (the previous row count)."
        try:
            row = Row(sense=sense, rhs=rhs, range_value=range_value)
        except ValidationError as exc:
            ordinal = instance.num_rows
            raise ConstructionError(f"row {ordinal}: {exc.errors()[0]['msg']}", ordinal=ordinal) from exc
        return ModelMutator.add_rows(instance, [row], [coefficients])[0]

    @staticmethod
    def add_rows(
        instance: LPInstance,
        rows: Sequence[Row],
        coefficients: Sequence[RowEntries],
    ) -> List[int]:
        """
        Append several constraints; ``coefficients[k]`` holds the
        ``(column, value)`` pairs of ``rows[k]``. Ordinals follow input order.
        """
        instance.require_loaded("add rows")
        rows = [row.model_copy() for row in rows]
        coefficients = list(coefficients)
        if len(rows) != len(coefficients):
            raise DimensionMismatch(
                f"{len(rows)} rows given with {len(coefficients)} coefficient lists."
            )
        first = instance.num_rows
        for offset, row in enumerate(rows):
            check_row(row, first + offset)
        names = _index_names(rows, "row", start=first, taken=instance._row_names)
        if instance.matrix.num_rows != first:
            raise DimensionMismatch(
                f"Matrix holds {instance.matrix.num_rows} rows but the instance has {first}."
            )

        instance.matrix.append_rows(coefficients)
        instance._rows.extend(rows)
        instance._row_names = names
        if rows:
            instance._mark_rows_appended()
            logger.debug(
                "Instance '%s': appended rows %d..%d.", instance.name, first, first + len(rows) - 1
            )
        return list(range(first, first + len(rows)))

    @staticmethod
    def add_columns(
        instance: LPInstance,
        columns: Sequence[Column],
        column_start,
        row_index,
        coefficient,
    ) -> List[int]:
        "Append variables in column-compressed form; clears the warm-start basis."
        instance.require_loaded("add columns")
        columns = [col.model_copy() for col in columns]
        first = instance.num_columns
        if len(column_start) != len(columns) + 1:
            raise DimensionMismatch(
                f"column_start has {len(column_start)} entries for {len(columns)} new columns."
            )
        for offset, column in enumerate(columns):
            check_bounds(column, first + offset)
        names = _index_names(columns, "column", start=first, taken=instance._column_names)

        instance.matrix.append_columns(column_start, row_index, coefficient)
        instance._columns.extend(columns)
        instance._column_names = names
        if columns:
            instance._invalidate_basis("columns added")
        return list(range(first, first + len(columns)))

    @staticmethod
    def change_bounds(instance: LPInstance, changes: Sequence[Tuple[int, float, float]]) -> None:
        "Apply ``(column, lb, ub)`` updates; clears the warm-start basis."
        instance.require_loaded("change bounds")
        staged = []
        for ordinal, lb, ub in changes:
            if not 0 <= ordinal < instance.num_columns:
                raise DimensionMismatch(
                    f"column {ordinal} out of range 0..{instance.num_columns - 1}.", ordinal=ordinal
                )
            updated = instance._columns[ordinal].model_copy(update={"lb": float(lb), "ub": float(ub)})
            check_bounds(updated, ordinal)
            staged.append((ordinal, updated))
        for ordinal, updated in staged:
            instance._columns[ordinal] = updated
        if staged:
            instance._invalidate_basis("bounds changed")

    @staticmethod
    def change_objective(instance: LPInstance, changes: Sequence[Tuple[int, float]]) -> None:
        "Apply ``(column, coefficient)`` updates; clears the warm-start basis."
        instance.require_loaded("change objective")
        staged = []
        for ordinal, value in changes:
            if not 0 <= ordinal < instance.num_columns:
                raise DimensionMismatch(
                    f"column {ordinal} out of range 0..{instance.num_columns - 1}.", ordinal=ordinal
                )
            if not math.isfinite(value):
                raise ValueError(f"Objective coefficient for column {ordinal} must be finite.")
            staged.append((ordinal, float(value)))
        for ordinal, value in staged:
            instance._columns[ordinal] = instance._columns[ordinal].model_copy(update={"objective": value})
        if staged:
            instance._invalidate_basis("objective changed")

    @staticmethod
    def change_sense(instance: LPInstance, sense: Sense) -> None:
        instance.require_loaded("change objective sense")
        if sense not in ("min", "max"):
            raise ValueError(f"Objective sense must be 'min' or 'max', got '{sense}'.")
        if sense != instance.sense:
            instance.sense = sense
            instance._invalidate_basis("objective sense changed")
