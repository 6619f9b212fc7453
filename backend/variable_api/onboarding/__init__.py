"""Onboarding wizard: company provisioning, session persistence, step gates."""

from variable_api.onboarding.gates import GateDecision, GateRefusal, StepGateEvaluator, can_advance
from variable_api.onboarding.payment_callback import PaymentCallbackHandler
from variable_api.onboarding.provisioner import CompanyProvisioner
from variable_api.onboarding.session_store import OnboardingSessionStore
from variable_api.onboarding.tenants import TenantRepository
from variable_api.onboarding.tracker import OnboardingTracker
from variable_api.onboarding.wizard import WizardController, WizardRegistry, get_wizard_registry

__all__ = [
    "CompanyProvisioner",
    "GateDecision",
    "GateRefusal",
    "OnboardingSessionStore",
    "OnboardingTracker",
    "PaymentCallbackHandler",
    "StepGateEvaluator",
    "TenantRepository",
    "WizardController",
    "WizardRegistry",
    "can_advance",
    "get_wizard_registry",
]
