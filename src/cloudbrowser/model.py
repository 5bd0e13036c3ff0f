"""
Application state for cloudbrowser.

The Model is the single mutable snapshot of everything the UI shows. Only
update.py (and the wizard module it delegates to) mutates it, one message at a
time, so nothing here needs locking.

Data Classes:
  - Model: current view, product, cached rows, filter, notification
  - WizardData: state of the create-instance flow
  - Ledger / LedgerEntry: resources created by the current wizard run
  - NetworkRequest: parameters of a private network to create

Enums:
  - ViewMode: mutually exclusive view states
  - ProductType: resource category being browsed
  - WizardStep: wizard states in path order
  - ProvisionStep: sub-steps of the Confirm sequence
  - ResourceKind: kinds of resources the wizard can create (and delete)
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional, Dict, Any, Tuple

from .debug_log import DebugLogger


class ViewMode(Enum):
    PROJECT_SELECT = "project_select"
    TABLE = "table"
    DETAIL = "detail"
    LOADING = "loading"
    ERROR = "error"
    EMPTY = "empty"
    WIZARD = "wizard"
    DELETE_CONFIRM = "delete_confirm"
    DEBUG = "debug"


class ProductType(Enum):
    INSTANCES = "instances"
    KUBERNETES = "kubernetes"
    DATABASES = "databases"
    STORAGE = "storage"
    NETWORKS = "networks"
    PROJECTS = "projects"


# Left/right navigation order; Projects is reached with "p" instead.
NAV_PRODUCTS: Tuple[ProductType, ...] = (
    ProductType.INSTANCES,
    ProductType.KUBERNETES,
    ProductType.DATABASES,
    ProductType.STORAGE,
    ProductType.NETWORKS,
)

PRODUCT_LABELS: Dict[ProductType, str] = {
    ProductType.INSTANCES: "Instances",
    ProductType.KUBERNETES: "Kubernetes",
    ProductType.DATABASES: "Databases",
    ProductType.STORAGE: "Storage",
    ProductType.NETWORKS: "Networks",
    ProductType.PROJECTS: "Projects",
}

# ovhcloud CLI subcommands that create each product; printed after exit
CREATE_SUBCOMMANDS: Dict[ProductType, str] = {
    ProductType.KUBERNETES: "kube create",
    ProductType.DATABASES: "database-service create",
    ProductType.STORAGE: "storage s3 create",
    ProductType.NETWORKS: "network create",
}


def creation_command(product: ProductType, project: str) -> str:
    """The ovhcloud CLI command that creates ``product`` in ``project``, or ""."""
    subcommand = CREATE_SUBCOMMANDS.get(product)
    if subcommand is None:
        return ""
    return f"ovhcloud cloud {subcommand} --cloud-project {project}"


class WizardStep(IntEnum):
    REGION = 0
    FLAVOR = 1
    IMAGE = 2
    SSH_KEY = 3
    NETWORK = 4
    FLOATING_IP = 5
    NAME = 6
    CONFIRM = 7


class ResourceKind(Enum):
    SSH_KEY = "SSH Key"
    NETWORK = "Network"
    SUBNET = "Subnet"
    GATEWAY = "Gateway"
    FLOATING_IP = "Floating IP"
    INSTANCE = "Instance"

    @property
    def label(self) -> str:
        return self.value


class ProvisionStep(Enum):
    NETWORK = "network"
    SUBNET = "subnet"
    GATEWAY = "gateway"
    INSTANCE = "instance"
    WAIT_FOR_IP = "wait_for_ip"
    ATTACH_FLOATING_IP = "attach_floating_ip"


# Sentinel ids used in wizard option lists
CREATE_NEW = "__create_new__"
NO_FLOATING_IP = "__none__"

INSTANCE_ACTIONS: Tuple[Tuple[str, str], ...] = (
    ("ssh", "SSH"),
    ("reboot", "Reboot"),
    ("stop_or_start", "Stop / Start"),
)


@dataclass(frozen=True)
class LedgerEntry:
    kind: ResourceKind
    resource_id: str
    region: str = ""
    parent_id: str = ""  # owning network for subnets


@dataclass
class Ledger:
    """Resources created by one wizard run, in creation order."""
    entries: List[LedgerEntry] = field(default_factory=list)

    def record(self, kind: ResourceKind, resource_id: str, region: str = "", parent_id: str = "") -> None:
        if resource_id:
            self.entries.append(LedgerEntry(kind, resource_id, region, parent_id))

    def get(self, kind: ResourceKind) -> str:
        for entry in reversed(self.entries):
            if entry.kind is kind:
                return entry.resource_id
        return ""

    def has(self, kind: ResourceKind) -> bool:
        return bool(self.get(kind))

    def kinds(self) -> List[ResourceKind]:
        return [entry.kind for entry in self.entries]

    def is_empty(self) -> bool:
        return not self.entries

    def clear(self) -> None:
        self.entries.clear()


@dataclass(frozen=True)
class NetworkRequest:
    name: str
    vlan_id: int
    cidr: str = "10.0.0.0/24"
    dhcp: bool = True


@dataclass
class WizardData:
    step: WizardStep = WizardStep.REGION
    run_id: int = 0

    # Per-step transient fields
    selected_index: int = 0
    filter_mode: bool = False
    filter_input: str = ""
    loading: bool = False
    error: str = ""

    # Lists loaded for the steps
    regions: List[Dict[str, Any]] = field(default_factory=list)
    image_cache: List[Dict[str, Any]] = field(default_factory=list)
    flavors: List[Dict[str, Any]] = field(default_factory=list)
    images: List[Dict[str, Any]] = field(default_factory=list)
    ssh_keys: List[Dict[str, Any]] = field(default_factory=list)
    networks: List[Dict[str, Any]] = field(default_factory=list)
    floating_ips: List[Dict[str, Any]] = field(default_factory=list)

    # Confirmed selections
    selected_region: str = ""
    selected_flavor: str = ""
    selected_flavor_name: str = ""
    selected_image: str = ""
    selected_image_name: str = ""
    selected_ssh_key: str = ""
    selected_ssh_key_name: str = ""
    use_public_network: bool = True
    selected_network: str = ""
    selected_network_name: str = ""
    selected_subnet: str = ""
    network_request: Optional[NetworkRequest] = None  # private network still to be completed
    selected_floating_ip: str = ""  # NO_FLOATING_IP, CREATE_NEW or an existing id
    selected_floating_ip_address: str = ""
    instance_name: str = ""
    name_input: str = ""

    # Network step: 0 = public toggle row, 1 = network list
    network_menu_index: int = 0

    # Inline SSH key form
    creating_ssh_key: bool = False
    ssh_key_form_field: int = 0  # 0 name, 1 key file list, 2 create, 3 cancel
    new_ssh_key_name: str = ""
    local_pub_keys: List[str] = field(default_factory=list)
    local_pub_key_index: int = 0
    new_ssh_key_public_key: str = ""

    # Inline network form
    creating_network: bool = False
    network_form_field: int = 0  # 0 name, 1 vlan, 2 cidr, 3 dhcp, 4 create
    new_network_name: str = ""
    new_network_vlan: str = ""
    new_network_cidr: str = "10.0.0.0/24"
    new_network_dhcp: bool = True

    # Confirm / provisioning
    confirm_button: int = 0  # 0 create, 1 cancel
    provisioning: bool = False
    provision_plan: List[ProvisionStep] = field(default_factory=list)
    provision_position: int = 0
    created_instance_private_ip: str = ""
    ledger: Ledger = field(default_factory=Ledger)

    # Compensating cleanup sub-mode
    cleanup_pending: bool = False
    cleanup_button: int = 0  # 0 delete all, 1 keep
    cleanup_error: str = ""

    @property
    def wants_floating_ip(self) -> bool:
        return self.selected_floating_ip not in ("", NO_FLOATING_IP)

    @property
    def text_input_active(self) -> bool:
        """True while keystrokes are free text rather than commands."""
        return (
            self.filter_mode
            or self.creating_ssh_key
            or self.creating_network
            or self.step is WizardStep.NAME
        )


@dataclass
class Model:
    mode: ViewMode = ViewMode.LOADING
    previous_mode: ViewMode = ViewMode.TABLE
    current_product: ProductType = ProductType.INSTANCES

    cloud_project: str = ""
    cloud_project_name: str = ""
    projects: List[Dict[str, Any]] = field(default_factory=list)

    current_data: List[Dict[str, Any]] = field(default_factory=list)
    detail_data: Optional[Dict[str, Any]] = None
    image_map: Dict[str, str] = field(default_factory=dict)
    floating_ip_map: Dict[str, str] = field(default_factory=dict)
    selected_index: int = 0
    detail_action_index: int = 0
    refresh_item_id: str = ""
    error_message: str = ""

    filter_mode: bool = False
    filter_input: str = ""

    wizard: Optional[WizardData] = None
    wizard_runs: int = 0

    delete_target: Optional[Dict[str, Any]] = None
    delete_input: str = ""
    delete_error: str = ""

    debug_scroll: int = 0
    debug_logger: Optional[DebugLogger] = field(default=None, repr=False, compare=False)

    notification: str = ""
    notification_expiry: float = 0.0
    notification_seq: int = 0

    refresh_interval: float = 10.0
    refresh_generation: int = 0
    refresh_armed: bool = False
    notification_seconds: float = 5.0
    debug_visible_entries: int = 15

    width: int = 120
    height: int = 40
