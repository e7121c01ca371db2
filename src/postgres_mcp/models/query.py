"""Statement, tool argument and transaction outcome models."""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exchanged with clients using camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Operation(CamelModel):
    """One statement inside a transaction."""

    statement: str = Field(..., description="SQL statement to execute")
    params: list[Any] = Field(
        default_factory=list, description="Positional parameters ($1, $2, ...)"
    )


class StatementParams(CamelModel):
    """Arguments for query_tool and execute_tool."""

    statement: str = Field(..., description="SQL statement to execute")
    params: list[Any] = Field(
        default_factory=list, description="Positional parameters ($1, $2, ...)"
    )
    db_alias: Optional[str] = Field(None, description="Database alias")


class SchemaParams(CamelModel):
    """Arguments for schema_tool."""

    table_name: str = Field(..., description="Table name")
    db_alias: Optional[str] = Field(None, description="Database alias")


class AllSchemasParams(CamelModel):
    """Arguments for all_schemas_tool."""

    db_alias: Optional[str] = Field(None, description="Database alias")


class TransactionParams(CamelModel):
    """Arguments for transaction_tool."""

    operations: list[Operation] = Field(
        ..., description="Statements to run atomically, in order"
    )
    db_alias: Optional[str] = Field(None, description="Database alias")


class OperationResult(CamelModel):
    """Result of one committed statement inside a transaction."""

    operation: int = Field(..., description="Zero-based operation index")
    rows_affected: int = Field(..., description="Rows affected by the statement")


class TransactionSuccess(CamelModel):
    """All operations ran and the transaction committed."""

    success: Literal[True] = True
    results: list[OperationResult] = Field(default_factory=list)


class TransactionFailure(CamelModel):
    """The transaction was rolled back."""

    success: Literal[False] = False
    error: str = Field(..., description="Failure message")
    failed_operation_index: int = Field(
        ...,
        description="Index of the failing operation, or -1 when no statement is at fault",
    )

    @property
    def attributable(self) -> bool:
        """Whether a specific operation caused the failure."""
        return self.failed_operation_index >= 0


TransactionOutcome = Union[TransactionSuccess, TransactionFailure]
