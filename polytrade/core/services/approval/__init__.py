"""
Approval Service Module
Handles contract approvals for Polymarket trading
"""
from .approval_orchestrator import ApprovalOrchestrator, next_approval_state, state_after_skip

__all__ = ['ApprovalOrchestrator', 'next_approval_state', 'state_after_skip']
