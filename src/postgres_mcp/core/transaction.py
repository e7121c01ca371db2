"""All-or-nothing execution of statement lists."""

import logging
from typing import Optional, Protocol, Sequence

from postgres_mcp.core.executor import (
    DRIVER_ERRORS,
    affected_rows,
    driver_message,
    run_statement,
)
from postgres_mcp.core.registry import ConnectionRegistry
from postgres_mcp.errors import TransactionAborted
from postgres_mcp.models.query import (
    Operation,
    OperationResult,
    TransactionFailure,
    TransactionOutcome,
    TransactionSuccess,
)

logger = logging.getLogger(__name__)

UNATTRIBUTED_FAILURE = -1


class ProgressObserver(Protocol):
    """Receives progress after each completed operation."""

    def __call__(self, progress: int, total: int) -> None: ...


class TransactionCoordinator:
    """Runs an ordered list of statements inside one database transaction."""

    def __init__(self, registry: ConnectionRegistry, default_alias: str = "main"):
        """
        Initialize transaction coordinator.

        Args:
            registry: Connection registry used to resolve aliases
            default_alias: Alias used when a call names none
        """
        self.registry = registry
        self.default_alias = default_alias

    async def run(
        self,
        operations: Sequence[Operation],
        db_alias: Optional[str] = None,
        observer: Optional[ProgressObserver] = None,
    ) -> TransactionOutcome:
        """
        Execute operations in order as a single atomic unit.

        Operations run strictly one after another. The first failure rolls
        back every change made by earlier operations and stops processing.

        Args:
            operations: Statements to run, in order
            db_alias: Database alias (default alias if omitted)
            observer: Optional progress callback invoked after each operation

        Returns:
            TransactionSuccess when every operation committed, otherwise
            TransactionFailure with the failing index (-1 when the failure
            did not come from a statement)

        Raises:
            ConnectionNotFound: If the alias is not registered
        """
        connection = self.registry.resolve(db_alias, self.default_alias)
        total = len(operations)
        results: list[OperationResult] = []
        aborted: Optional[TransactionAborted] = None

        logger.info(
            f"Starting transaction with {total} operation(s) on '{connection.alias}'"
        )

        try:
            async with connection.begin() as conn:
                for index, operation in enumerate(operations):
                    try:
                        result = await run_statement(
                            conn, operation.statement, operation.params
                        )
                    except DRIVER_ERRORS as e:
                        aborted = TransactionAborted(index, driver_message(e))
                        raise aborted from e

                    results.append(
                        OperationResult(
                            operation=index, rows_affected=affected_rows(result)
                        )
                    )
                    self._notify(observer, index + 1, total)
        except TransactionAborted as e:
            return self._rolled_back(e)
        except (*DRIVER_ERRORS, RuntimeError) as e:
            # A failed rollback must not hide which operation failed
            if aborted is not None:
                logger.error(f"Rollback after operation {aborted.index} failed: {e}")
                return self._rolled_back(aborted)
            logger.error(f"Transaction error on '{connection.alias}': {e}")
            return TransactionFailure(
                error=f"Transaction error: {driver_message(e)}",
                failed_operation_index=UNATTRIBUTED_FAILURE,
            )

        logger.info(f"Transaction committed ({total} operation(s))")
        return TransactionSuccess(results=results)

    def _rolled_back(self, aborted: TransactionAborted) -> TransactionFailure:
        logger.warning(f"Transaction rolled back: {aborted}")
        return TransactionFailure(
            error=str(aborted), failed_operation_index=aborted.index
        )

    def _notify(
        self, observer: Optional[ProgressObserver], progress: int, total: int
    ) -> None:
        if observer is None:
            return
        try:
            observer(progress, total)
        except Exception as e:
            logger.warning(f"Progress observer failed: {e}")
