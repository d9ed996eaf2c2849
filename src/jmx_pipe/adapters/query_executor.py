"""
Query execution against a live registry session.

For every configured query the executor resolves each object-name pattern,
reads the requested attributes (or key properties) of the matched objects
and emits records:

- A query with a single pattern emits one record per matched object, so a
  wildcard pattern fans out into many records.
- A query with several patterns merges everything into one record. A
  pattern matching more than one object only contributes its first match.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..common.exceptions import DegradedCondition
from ..models.queries import AttributePath, Query
from ..models.registry import ManagedObject, unquote
from ..models.values import to_value
from .coercion import resolve
from .core import RegistrySession
from .output import RecordEmitter


class QueryExecutor:
    """Runs queries and hands the resulting records to a ``RecordEmitter``."""

    def __init__(
        self,
        emitter: RecordEmitter,
        is_connection_lost: Callable[[BaseException], bool],
        event_context: Optional[Mapping[str, Any]] = None,
        emit_context_only_records: bool = False,
        host: Optional[str] = None,
        port: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            emitter: Record emitter shared with the notification path
            is_connection_lost: Classifier deciding which errors abort the tick
            event_context: Static fields copied into every record
            emit_context_only_records: Emit a merged record even when nothing
                beyond the event context was collected
            host: Registry host, attached to every log line
            port: Registry port, attached to every log line
            logger: Logger instance
        """
        self.emitter = emitter
        self.is_connection_lost = is_connection_lost
        self.event_context = dict(event_context or {})
        self.emit_context_only_records = emit_context_only_records
        self.endpoint = {"host": host, "port": port}
        self.logger = logger or logging.getLogger(__name__)

    async def execute_all(self, session: RegistrySession, queries: Sequence[Query]) -> int:
        """Run every query in order; returns the number of records emitted."""
        emitted = 0
        for query in queries:
            emitted += await self.execute(session, query)
        return emitted

    async def execute(self, session: RegistrySession, query: Query) -> int:
        """Run one query.

        Raises:
            Exception: Only errors classified as connection loss propagate
        """
        emitted = 0
        values = dict(self.event_context)

        for pattern, attr_spec in query.objects.items():
            objects = await self._find(session, query, pattern)
            if not objects:
                continue

            if not query.fans_out and len(objects) > 1:
                self.logger.warning(
                    f"Found {len(objects)} object(s) for {pattern}; avoiding combinatorial explosion "
                    f"by only querying the 1st object!",
                    extra={
                        **self.endpoint,
                        "query": query.name,
                        "pattern": pattern,
                        "dropped": [str(o.name) for o in objects[1:]],
                        "condition": DegradedCondition.OBJECT_RESOLUTION.value,
                    },
                )
                objects = objects[:1]
            else:
                self.logger.debug(
                    f"Found {len(objects)} object(s) for {pattern}",
                    extra={**self.endpoint, "query": query.name},
                )

            for managed_object in objects:
                try:
                    await self.read_object(session, managed_object, attr_spec, values)
                except Exception as e:
                    if self.is_connection_lost(e):
                        raise
                    self.logger.error(
                        f"Unable to process object {managed_object.name}: {e}",
                        exc_info=True,
                        extra={**self.endpoint, "query": query.name, "pattern": pattern},
                    )

                if query.fans_out:
                    self.emitter.emit(query.name, values)
                    values = dict(self.event_context)
                    emitted += 1

        if not query.fans_out and emitted == 0 and self._has_content(values):
            self.emitter.emit(query.name, values)
            emitted += 1

        return emitted

    async def _find(self, session: RegistrySession, query: Query, pattern: str) -> List[ManagedObject]:
        try:
            objects = await session.find_objects(pattern)
        except Exception as e:
            if self.is_connection_lost(e):
                raise
            self.logger.warning(
                f"Resolving {pattern} failed: {e}",
                extra={**self.endpoint, "query": query.name, "condition": DegradedCondition.OBJECT_RESOLUTION.value},
            )
            return []

        if not objects:
            self.logger.warning(
                f"No object found for {pattern}",
                extra={**self.endpoint, "query": query.name, "condition": DegradedCondition.OBJECT_RESOLUTION.value},
            )
        return list(objects)

    async def read_object(
        self,
        session: RegistrySession,
        managed_object: ManagedObject,
        attr_spec: Mapping[str, str],
        values: Dict[str, Any],
    ) -> None:
        """Read the attributes named in ``attr_spec`` into ``values``."""
        paths = [(AttributePath.parse(path), alias) for path, alias in attr_spec.items()]

        names: List[str] = []
        for path, _ in paths:
            if not path.identity and path.attribute not in names:
                names.append(path.attribute)

        fetched = await session.get_attributes(managed_object.handle, names) if names else {}

        for path, alias in paths:
            if path.identity:
                raw = managed_object.name.get_key_property(path.attribute)
                if raw is not None and raw.startswith('"'):
                    raw = unquote(raw)
            else:
                raw = fetched.get(path.attribute)
            resolve(to_value(raw), alias, path.segments, values, self.logger, self.endpoint)

    def _has_content(self, values: Mapping[str, Any]) -> bool:
        if self.emit_context_only_records:
            return bool(values)
        return dict(values) != self.event_context
