"""Settlement reconciliation engine for tour-booking platform exports."""
from settlement_recon.application.use_cases import (
    ConfirmSettlementUseCase,
    ReconcileSettlementUseCase,
    SettlementContext,
)
from settlement_recon.domain.confirmation import ConfirmationCoordinator
from settlement_recon.domain.matching import MatchPolicy, SettlementMatcher
from settlement_recon.domain.summary import summarize
from settlement_recon.infrastructure.parsing.registry import parse_settlement_file

__all__ = [
    "ConfirmSettlementUseCase",
    "ReconcileSettlementUseCase",
    "SettlementContext",
    "ConfirmationCoordinator",
    "MatchPolicy",
    "SettlementMatcher",
    "summarize",
    "parse_settlement_file",
]
