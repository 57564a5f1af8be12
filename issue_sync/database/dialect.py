"""
Dialect-aware upsert statements (INSERT ... ON CONFLICT DO UPDATE).
"""

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session


def upsert(session: Session, model, rows, index_elements, update_columns):
    """
    Build an upsert of ``rows`` into ``model``'s table.

    Args:
        session: Session whose bind decides the dialect
        model: ORM model class
        rows: A dict or list of dicts of column values
        index_elements: Columns of the conflicting unique key
        update_columns: Columns overwritten from the incoming row on conflict

    Returns:
        Executable insert statement
    """
    dialect = session.get_bind().dialect.name
    if dialect == 'postgresql':
        stmt = pg_insert(model).values(rows)
    elif dialect == 'sqlite':
        stmt = sqlite_insert(model).values(rows)
    else:
        raise NotImplementedError(f"Upserts are not supported on {dialect}")

    return stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={column: stmt.excluded[column] for column in update_columns}
    )
