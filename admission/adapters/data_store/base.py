from abc import ABC, abstractmethod
from typing import Any, Mapping


class AbstractDataStore(ABC):
	"""Interface to the durable relational store used by admission control."""

	@abstractmethod
	async def rpc(self, function: str, params: Mapping[str, Any]) -> Any:
		"""Call a server-side procedure atomically.

		Args:
			function: Procedure name (e.g., "check_rate_limit").
			params: Named arguments for the procedure.

		Returns:
			Any: Decoded JSON result of the procedure.

		Raises:
			DataStoreAppError: If the call fails or the response cannot be decoded.
		"""
		...

	@abstractmethod
	async def select(
		self,
		table: str,
		*,
		columns: list[str],
		filters: Mapping[str, Any],
	) -> list[dict[str, Any]]:
		"""Read rows matching every equality filter.

		Args:
			table: Table name.
			columns: Columns to return.
			filters: Column -> value equality filters, combined with AND.

		Returns:
			list[dict[str, Any]]: Matching rows (possibly empty).

		Raises:
			DataStoreAppError: If the query fails or the response is not a list of rows.
		"""
		...

	async def aclose(self) -> None:
		"""Release network resources held by the store."""
		return None
