from .config_types import StackConfig
from .errors import CommandError, ConfigSynthesisError, HostEnvironmentError, ProvisionError, ReleaseError
from .ledger import Ledger
from .provision import ProvisionSummary, Provisioner, StepEvent

__all__ = [
    "CommandError",
    "ConfigSynthesisError",
    "HostEnvironmentError",
    "Ledger",
    "ProvisionError",
    "ProvisionSummary",
    "Provisioner",
    "StackConfig",
    "StepEvent",
]
