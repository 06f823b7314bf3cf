"""
In-memory persistence for saved workflow definitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional

from workflow_compiler.schema.models import WorkflowDefinition


@dataclass
class StoredWorkflow:
    owner_id: str
    definition: WorkflowDefinition


class WorkflowStore:
    def __init__(self) -> None:
        self._records: Dict[str, StoredWorkflow] = {}
        self._lock = Lock()

    def save(self, owner_id: str, definition: WorkflowDefinition) -> StoredWorkflow:
        record = StoredWorkflow(owner_id=owner_id, definition=definition)
        with self._lock:
            self._records[definition.id] = record
        return record

    def get(self, workflow_id: str) -> Optional[StoredWorkflow]:
        with self._lock:
            return self._records.get(workflow_id)

    def delete(self, workflow_id: str) -> bool:
        with self._lock:
            return self._records.pop(workflow_id, None) is not None

    def list_for(self, owner_id: str) -> List[StoredWorkflow]:
        with self._lock:
            return [record for record in self._records.values() if record.owner_id == owner_id]
