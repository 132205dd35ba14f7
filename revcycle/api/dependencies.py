"""
FastAPI dependencies that assemble the service objects for a request.

Every service gets the request's database session and its collaborators
through its constructor; tests swap any of these with
``app.dependency_overrides``.
"""
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from revcycle.config.database import get_db
from revcycle.config.settings import RevenueCycleSettings, get_settings
from revcycle.services.audit import AuditSink
from revcycle.services.billing.claims import ClaimAssembler
from revcycle.services.billing.ledger import ChargeLedger
from revcycle.services.coding.encounters import EncounterReader
from revcycle.services.coding.engine import MDMCodingEngine
from revcycle.services.integrations.clearinghouse import ClearinghouseGateway, HttpClearinghouseGateway
from revcycle.services.queue.scheduler import CeleryDeadlineScheduler, DeadlineScheduler
from revcycle.services.reconciliation.denials import DenialManager
from revcycle.services.reconciliation.processor import RemittanceProcessor


def get_current_user(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Caller identity, already authenticated and authorized upstream."""
    return x_user_id


def get_audit_sink(db: Session = Depends(get_db)) -> AuditSink:
    return AuditSink(db)


def get_clearinghouse_gateway(settings: RevenueCycleSettings = Depends(get_settings)) -> ClearinghouseGateway:
    return HttpClearinghouseGateway.from_settings(settings)


def get_deadline_scheduler() -> DeadlineScheduler:
    return CeleryDeadlineScheduler()


def get_charge_ledger(
    db: Session = Depends(get_db),
    audit: AuditSink = Depends(get_audit_sink),
) -> ChargeLedger:
    return ChargeLedger(db, audit)


def get_coding_engine(
    db: Session = Depends(get_db),
    ledger: ChargeLedger = Depends(get_charge_ledger),
) -> MDMCodingEngine:
    return MDMCodingEngine(db, EncounterReader(db), ledger)


def get_claim_assembler(
    db: Session = Depends(get_db),
    audit: AuditSink = Depends(get_audit_sink),
    gateway: ClearinghouseGateway = Depends(get_clearinghouse_gateway),
    settings: RevenueCycleSettings = Depends(get_settings),
) -> ClaimAssembler:
    return ClaimAssembler(db, audit, gateway, settings)


def get_denial_manager(
    db: Session = Depends(get_db),
    audit: AuditSink = Depends(get_audit_sink),
    scheduler: DeadlineScheduler = Depends(get_deadline_scheduler),
    settings: RevenueCycleSettings = Depends(get_settings),
) -> DenialManager:
    return DenialManager(db, audit, scheduler, settings)


def get_remittance_processor(
    db: Session = Depends(get_db),
    audit: AuditSink = Depends(get_audit_sink),
    denials: DenialManager = Depends(get_denial_manager),
) -> RemittanceProcessor:
    return RemittanceProcessor(db, audit, denials)
