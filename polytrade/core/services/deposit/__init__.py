"""
Deposit Module
Guided approval and deposit flow
"""
from .deposit_wizard import DepositWizard, WizardStep, next_step

__all__ = ['DepositWizard', 'WizardStep', 'next_step']
