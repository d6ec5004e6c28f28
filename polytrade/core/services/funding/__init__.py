"""
Funding Module
Funding address derivation per wallet backend
"""
from .funding_resolver import (
    FundingAddressResolver,
    derive_proxy_address,
    derive_safe_address,
    signature_type_for,
)

__all__ = ['FundingAddressResolver', 'derive_proxy_address', 'derive_safe_address', 'signature_type_for']
