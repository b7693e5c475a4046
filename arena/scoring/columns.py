from arena.scoring.csv_parser import TabularValue

# Checked in order, case-insensitively.
TARGET_COLUMN_NAMES = (
    "target",
    "label",
    "y",
    "prediction",
    "pred",
    "class",
    "clicked",
    "probability",
    "prob",
    "score",
)


def target_column_index(tabular: TabularValue) -> int:
    lowered = [h.lower() for h in tabular.headers]
    for name in TARGET_COLUMN_NAMES:
        if name in lowered:
            return lowered.index(name)
    return len(tabular.headers) - 1


def target_column(tabular: TabularValue) -> list[str]:
    """Return the prediction/target column of a parsed CSV.

    The first header matching :data:`TARGET_COLUMN_NAMES` wins. When nothing
    matches, the last column is used, so files shaped like ``id,<value>``
    work without a recognised name. That fallback is loose on purpose:
    submissions should either use a recognised column name or put the
    predictions last.
    """
    index = target_column_index(tabular)
    return [row[index] for row in tabular.rows]


def row_objects(tabular: TabularValue) -> list[dict[str, str]]:
    """One header -> cell mapping per data row. Later duplicate headers win."""
    return [dict(zip(tabular.headers, row)) for row in tabular.rows]
