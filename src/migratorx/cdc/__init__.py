"""Change-data-capture validators."""

from migratorx.cdc.debezium import ConnectorStatus, DebeziumHealthCheck, DebeziumInspector, TaskStatus
from migratorx.cdc.schema_history import KafkaInspector, SchemaHistoryCheck

__all__ = [
    "ConnectorStatus",
    "DebeziumHealthCheck",
    "DebeziumInspector",
    "KafkaInspector",
    "SchemaHistoryCheck",
    "TaskStatus",
]
