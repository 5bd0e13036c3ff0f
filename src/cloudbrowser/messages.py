"""
Messages fed into update().

Every event the state machine reacts to is one of the dataclasses below:
user input, or the outcome of a Command. Results of data-loading commands
carry the staleness stamp captured at dispatch time (``for_product`` for
browsing, ``run_id``/``step`` for the wizard) so update() can discard
results that no longer match the live view.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .model import ProductType, ProvisionStep, ResourceKind, WizardStep


@dataclass(frozen=True)
class Message:
    """Base class of the closed message union."""


@dataclass(frozen=True)
class KeyPress(Message):
    key: str
    character: Optional[str] = None


@dataclass(frozen=True)
class WindowResized(Message):
    width: int
    height: int


# --- Browsing -----------------------------------------------------------

@dataclass(frozen=True)
class ProjectsLoaded(Message):
    projects: List[Dict[str, Any]] = field(default_factory=list)
    error: str = ""


@dataclass(frozen=True)
class DataLoaded(Message):
    for_product: ProductType
    project_id: str
    data: List[Dict[str, Any]] = field(default_factory=list)
    error: str = ""


@dataclass(frozen=True)
class InstancesEnriched(Message):
    for_product: ProductType
    project_id: str
    image_map: Dict[str, str] = field(default_factory=dict)
    floating_ip_map: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RefreshTick(Message):
    for_product: ProductType
    generation: int


@dataclass(frozen=True)
class ClearNotification(Message):
    seq: int


@dataclass(frozen=True)
class DefaultProjectSaved(Message):
    project_id: str
    project_name: str = ""
    error: str = ""


@dataclass(frozen=True)
class InstanceDeleted(Message):
    instance_id: str
    name: str
    error: str = ""


@dataclass(frozen=True)
class InstanceActionDone(Message):
    action: str
    name: str
    error: str = ""


@dataclass(frozen=True)
class SSHFinished(Message):
    name: str
    error: str = ""


@dataclass(frozen=True)
class DebugLogCleared(Message):
    pass


# --- Wizard -------------------------------------------------------------

@dataclass(frozen=True)
class WizardListLoaded(Message):
    run_id: int
    step: WizardStep
    items: List[Dict[str, Any]] = field(default_factory=list)
    extra: List[Dict[str, Any]] = field(default_factory=list)  # region step: all images
    error: str = ""


@dataclass(frozen=True)
class LocalKeysListed(Message):
    run_id: int
    paths: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PublicKeyRead(Message):
    run_id: int
    path: str
    content: str = ""
    error: str = ""


@dataclass(frozen=True)
class SSHKeyCreated(Message):
    run_id: int
    key: Dict[str, Any] = field(default_factory=dict)
    error: str = ""


@dataclass(frozen=True)
class NetworkCreated(Message):
    run_id: int
    network: Dict[str, Any] = field(default_factory=dict)
    subnet_id: str = ""
    error: str = ""


@dataclass(frozen=True)
class ProvisionStepDone(Message):
    """Outcome of one Confirm-sequence step.

    ``created`` lists the resources the step brought into existence, even
    when it then failed, so the ledger stays a true record.
    """
    run_id: int
    step: ProvisionStep
    created: Tuple[Tuple[ResourceKind, str], ...] = ()
    values: Dict[str, str] = field(default_factory=dict)
    error: str = ""


@dataclass(frozen=True)
class CleanupDone(Message):
    run_id: int
    deleted: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
