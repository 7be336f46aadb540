"""
Resolución de destinatarios por nivel de escalamiento
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set
import logging

from app.scheduler.records import EscalationTier, UserContact
from app.utils.timezone import in_quiet_hours, to_local

logger = logging.getLogger(__name__)


# Canales por nivel
TIER_CHANNELS: Dict[EscalationTier, Set[str]] = {
    EscalationTier.REMINDER: {"push"},
    EscalationTier.ALERT: {"push", "email"},
    EscalationTier.CRITICAL: {"push", "email", "sms"},
}

# Canales para avisos informativos (p.ej. medicamento administrado)
INFO_CHANNELS: Set[str] = {"push"}


@dataclass
class Recipient:
    """Usuario a notificar y canales efectivos"""
    user_id: int
    name: str
    role: str
    channels: Set[str] = field(default_factory=set)


class RecipientResolver:
    """Calcula quién recibe cada nivel y por qué canales"""

    def __init__(self, store):
        self.store = store

    def resolve(
            self,
            patient_id: int,
            tier: EscalationTier,
            at: datetime
    ) -> List[Recipient]:
        """
        - reminder: solo la cuidadora de turno.
        - alert: la cuidadora de turno; si no hay nadie de turno, toda la familia.
        - critical: toda la familia más la cuidadora de turno.
        """
        caregiver = self.store.get_on_duty_caregiver(patient_id)

        candidates: List[tuple] = []
        if tier == EscalationTier.REMINDER:
            if caregiver:
                candidates.append((caregiver, "caregiver"))
        elif tier == EscalationTier.ALERT:
            if caregiver:
                candidates.append((caregiver, "caregiver"))
            else:
                candidates.extend((member, "family") for member in self.store.list_family(patient_id))
        else:
            candidates.extend((member, "family") for member in self.store.list_family(patient_id))
            if caregiver:
                candidates.append((caregiver, "caregiver"))

        recipients = self._build(candidates, TIER_CHANNELS[tier], tier, at)
        if not recipients:
            logger.warning(f"Sin destinatarios para nivel {tier.value} del paciente {patient_id}")
        return recipients

    def resolve_family(self, patient_id: int, at: datetime) -> List[Recipient]:
        """Familia completa para avisos informativos (respeta horario de silencio)"""
        candidates = [(member, "family") for member in self.store.list_family(patient_id)]
        return self._build(candidates, INFO_CHANNELS, None, at)

    def _build(
            self,
            candidates: List[tuple],
            tier_channels: Set[str],
            tier: Optional[EscalationTier],
            at: datetime
    ) -> List[Recipient]:
        merged: Dict[int, Recipient] = {}
        for contact, role in candidates:
            channels = self._channels_for(contact, tier_channels, tier, at)
            if not channels:
                continue
            if contact.id in merged:
                merged[contact.id].channels |= channels
            else:
                merged[contact.id] = Recipient(
                    user_id=contact.id,
                    name=contact.name,
                    role=role,
                    channels=channels
                )
        return list(merged.values())

    @staticmethod
    def _channels_for(
            contact: UserContact,
            tier_channels: Set[str],
            tier: Optional[EscalationTier],
            at: datetime
    ) -> Set[str]:
        channels = tier_channels & contact.enabled_channels()
        if not channels:
            return set()

        quiet = in_quiet_hours(
            to_local(at, contact.timezone),
            contact.quiet_hours_start,
            contact.quiet_hours_end
        )
        if quiet:
            if tier == EscalationTier.CRITICAL and contact.critical_override_quiet:
                return channels
            logger.debug(f"Usuario {contact.id} en horario de silencio, se omite")
            return set()
        return channels
