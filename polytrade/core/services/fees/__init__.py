"""
Fees Module
Platform fee collection and resting-order fee reconciliation
"""
from .fee_reconciler import FeeReconciler
from .fee_service import FeeService, get_fee_service
from .pending_fee_store import (
    MemoryPendingFeeStore,
    PendingFeeStore,
    RedisPendingFeeStore,
    build_pending_fee_store,
)

__all__ = [
    'FeeService',
    'FeeReconciler',
    'get_fee_service',
    'PendingFeeStore',
    'MemoryPendingFeeStore',
    'RedisPendingFeeStore',
    'build_pending_fee_store',
]
