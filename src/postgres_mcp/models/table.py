"""Table column information models."""

from typing import Optional

from pydantic import Field

from postgres_mcp.models.query import CamelModel


class ColumnInfo(CamelModel):
    """Information about a table column."""

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Column data type")
    nullable: bool = Field(..., description="Whether column allows NULL")
    default_expression: Optional[str] = Field(
        None, description="Default value expression"
    )
    ordinal_position: int = Field(..., description="1-based column position")

    @classmethod
    def from_catalog_row(cls, row: dict) -> "ColumnInfo":
        """Build from an information_schema.columns row."""
        return cls(
            name=row["column_name"],
            data_type=row["data_type"],
            nullable=str(row["is_nullable"]).upper() == "YES",
            default_expression=row.get("column_default"),
            ordinal_position=int(row["ordinal_position"]),
        )


TableSchema = list[ColumnInfo]
