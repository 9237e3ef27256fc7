"""
Audit emitter and audit trail reader

Every state change in the workflow core is followed by exactly one
AuditEvent. Emission happens after the primary mutation committed; if it
fails the operation reports failure even though the mutation stays.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.clock import utcnow
from ..core.exceptions import PersistenceException, ValidationException
from ..models.status import AuditAction, AuditEntityType, parse_audit_action
from ..store.base import DataStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditActionLabel:
    label: str
    category: str


AUDIT_ACTION_LABELS: Dict[AuditAction, AuditActionLabel] = {
    AuditAction.ORDER_CREATED: AuditActionLabel("Orden creada", "creation"),
    AuditAction.ORDER_UPDATED: AuditActionLabel("Orden actualizada", "info"),
    AuditAction.SPECIMENS_GENERATED: AuditActionLabel("Muestras generadas", "creation"),
    AuditAction.LABEL_PRINTED: AuditActionLabel("Etiqueta impresa", "creation"),
    AuditAction.LABEL_REPRINTED: AuditActionLabel("Etiqueta reimpresa", "info"),
    AuditAction.ORDER_READY_FOR_LAB: AuditActionLabel("Orden lista para laboratorio", "creation"),
    AuditAction.SPECIMEN_SCANNED: AuditActionLabel("Muestra escaneada", "processing"),
    AuditAction.SPECIMEN_RECEIVED: AuditActionLabel("Muestra recibida", "processing"),
    AuditAction.SPECIMEN_IN_PROGRESS: AuditActionLabel("Muestra en proceso", "processing"),
    AuditAction.SPECIMEN_COMPLETED: AuditActionLabel("Muestra completada", "processing"),
    AuditAction.SPECIMEN_REJECTED: AuditActionLabel("Muestra rechazada", "rejection"),
    AuditAction.EXAM_STARTED: AuditActionLabel("Examen iniciado", "processing"),
    AuditAction.EXAM_RESULTS_SAVED: AuditActionLabel("Resultados guardados", "processing"),
    AuditAction.EXAM_SENT_TO_VALIDATION: AuditActionLabel("Enviado a validación", "validation"),
    AuditAction.EXAM_APPROVED: AuditActionLabel("Examen aprobado", "validation"),
    AuditAction.EXAM_REJECTED: AuditActionLabel("Examen rechazado", "rejection"),
    AuditAction.INCIDENCE_CREATED: AuditActionLabel("Incidencia creada", "incidence"),
}


def get_audit_action_label(action: str) -> AuditActionLabel:
    """Display label for any action string, including unknown ones"""
    known = parse_audit_action(action)
    if known is not None:
        return AUDIT_ACTION_LABELS[known]
    return AuditActionLabel((action or "desconocido").replace("_", " ").lower(), "info")


def require_actor(user_id: Optional[str]) -> str:
    if not user_id or not str(user_id).strip():
        raise ValidationException("Debe indicar el usuario que realiza la acción")
    return str(user_id).strip()


def serialize_metadata(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    """Serialize metadata as a JSON string.
    
    Keys whose value is None are dropped, like optional fields that were
    never set. Every other value must round-trip through JSON unchanged.
    """
    if metadata is None:
        return None
    cleaned = {key: value for key, value in metadata.items() if value is not None}
    try:
        return json.dumps(cleaned, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        logger.error(f"Audit metadata is not serializable: {str(e)}")
        raise ValidationException("No se pudieron serializar los metadatos de auditoría")


class AuditEmitter:
    """Appends AuditEvent rows through the data store"""
    
    def __init__(self, store: DataStore):
        self.store = store
    
    async def emit(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        action: AuditAction,
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """Append one event; raises PersistenceException if it is not stored"""
        serialized = serialize_metadata(metadata)
        
        result = await self.store.audit_events.create(
            entity_type=AuditEntityType(entity_type).value,
            entity_id=entity_id,
            action=AuditAction(action).value,
            user_id=user_id,
            timestamp=utcnow(),
            metadata_json=serialized,
        )
        if not result.succeeded:
            raise PersistenceException(
                result.error_message("No se pudo registrar el evento de auditoría")
            )
        
        logger.debug(f"Audit {action.value} on {entity_type.value}:{entity_id} by {user_id}")
        return result.data


class AuditTrail:
    """Read side of the audit log"""
    
    def __init__(self, store: DataStore):
        self.store = store
    
    async def events_for(self, entity_type: AuditEntityType, entity_id: str) -> List[Dict[str, Any]]:
        """Events of one entity, oldest first, with display labels"""
        events = await self.store.audit_events.list(
            entity_type=AuditEntityType(entity_type).value,
            entity_id=entity_id,
        )
        events.sort(key=lambda event: (event.timestamp, event.id))
        
        timeline = []
        for event in events:
            label = get_audit_action_label(event.action)
            entry = event.to_dict()
            entry["label"] = label.label
            entry["category"] = label.category
            timeline.append(entry)
        return timeline
    
    async def count(self, entity_type: AuditEntityType, entity_id: str, action: AuditAction) -> int:
        events = await self.store.audit_events.list(
            entity_type=AuditEntityType(entity_type).value,
            entity_id=entity_id,
            action=AuditAction(action).value,
        )
        return len(events)
