"""
Commands returned by update().

A Command describes an effect without performing it. The executor resolves
each one into zero or more Messages; tests can simply compare the value that
update() returned.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .model import LedgerEntry, NetworkRequest, ProductType, ProvisionStep, WizardStep


@dataclass(frozen=True)
class Command:
    """Base class of all effects."""


@dataclass(frozen=True)
class Batch(Command):
    commands: Tuple[Command, ...] = ()


@dataclass(frozen=True)
class Quit(Command):
    """Leave the app; ``result`` is printed once the terminal is restored."""
    result: Optional[str] = None


def batch(*commands: Optional[Command]) -> Optional[Command]:
    """Combine commands, dropping empty ones."""
    flat = []
    for cmd in commands:
        if cmd is None:
            continue
        if isinstance(cmd, Batch):
            flat.extend(cmd.commands)
        else:
            flat.append(cmd)
    if not flat:
        return None
    if len(flat) == 1:
        return flat[0]
    return Batch(tuple(flat))


# --- Timers ---------------------------------------------------------------

@dataclass(frozen=True)
class Tick(Command):
    """Fires RefreshTick after ``delay`` seconds."""
    delay: float
    for_product: ProductType
    generation: int


@dataclass(frozen=True)
class ClearNotificationAfter(Command):
    delay: float
    seq: int


# --- Browsing -------------------------------------------------------------

@dataclass(frozen=True)
class FetchProjects(Command):
    pass


@dataclass(frozen=True)
class FetchProductData(Command):
    product: ProductType
    project_id: str


@dataclass(frozen=True)
class EnrichInstances(Command):
    for_product: ProductType
    project_id: str
    regions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SaveDefaultProject(Command):
    project_id: str
    project_name: str = ""


@dataclass(frozen=True)
class DeleteInstance(Command):
    project_id: str
    instance_id: str
    name: str


@dataclass(frozen=True)
class InstanceAction(Command):
    project_id: str
    instance_id: str
    name: str
    action: str  # reboot, start, stop


@dataclass(frozen=True)
class RunSSH(Command):
    user: str
    ip: str
    name: str


@dataclass(frozen=True)
class ClearDebugLog(Command):
    pass


# --- Wizard -----------------------------------------------------------------

@dataclass(frozen=True)
class FetchWizardList(Command):
    run_id: int
    step: WizardStep
    project_id: str
    region: str = ""


@dataclass(frozen=True)
class ListLocalKeys(Command):
    run_id: int


@dataclass(frozen=True)
class ReadPublicKey(Command):
    run_id: int
    path: str


@dataclass(frozen=True)
class CreateSSHKey(Command):
    run_id: int
    project_id: str
    name: str
    public_key: str
    region: str = ""


@dataclass(frozen=True)
class CreateNetwork(Command):
    run_id: int
    project_id: str
    region: str
    request: NetworkRequest


@dataclass(frozen=True)
class ProvisionContext:
    """Everything a Confirm-sequence step needs, captured from the wizard."""
    project_id: str
    region: str
    instance_name: str
    flavor_id: str
    image_id: str
    ssh_key_id: str = ""
    network_id: str = ""
    subnet_id: str = ""
    network_request: Optional[NetworkRequest] = None
    floating_ip: str = ""
    instance_id: str = ""
    private_ip: str = ""


@dataclass(frozen=True)
class Provision(Command):
    run_id: int
    step: ProvisionStep
    context: ProvisionContext


@dataclass(frozen=True)
class Cleanup(Command):
    run_id: int
    project_id: str
    entries: Tuple[LedgerEntry, ...] = ()

