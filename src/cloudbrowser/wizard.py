"""
Create-instance wizard.

Path: Region -> Flavor -> Image -> SSH key -> Network -> [Floating IP] -> Name -> Confirm

Each step has an entry action (a loading Command), list navigation with an
optional text filter, and an exit transition that records the choice and
enters the next step. The SSH key and Network steps host inline creation
forms. Confirm drives the provisioning saga one step at a time; a failure
after anything was created switches to the cleanup prompt.

All functions here mutate the Model passed in and return the next Command
(or None); they are called from update() only.
"""

import ipaddress
import logging
import random
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .commands import (
    Cleanup, Command, CreateNetwork, CreateSSHKey, FetchWizardList, ListLocalKeys,
    Provision, Quit, ReadPublicKey, batch,
)
from .filters import (
    filter_flavors, filter_floating_ips, filter_images, filter_networks, filter_regions,
    filter_ssh_keys, get_str, images_for_region,
)
from .messages import (
    CleanupDone, KeyPress, LocalKeysListed, NetworkCreated, ProvisionStepDone, PublicKeyRead,
    SSHKeyCreated, WizardListLoaded,
)
from .model import (
    CREATE_NEW, NO_FLOATING_IP, Model, NetworkRequest, ProductType, ResourceKind,
    ViewMode, WizardData, WizardStep,
)
from .navigation import NOTIFY_LONG, load_current_product, notify
from .provisioning import (
    RESOURCES_KEPT, build_context, cleanup_summary, plan_provisioning, subnet_range, validate_plan,
)

logger = logging.getLogger(__name__)

Option = Dict[str, Any]

STEP_TITLES = {
    WizardStep.REGION: "Region",
    WizardStep.FLAVOR: "Flavor",
    WizardStep.IMAGE: "Image",
    WizardStep.SSH_KEY: "SSH Key",
    WizardStep.NETWORK: "Network",
    WizardStep.FLOATING_IP: "Floating IP",
    WizardStep.NAME: "Name",
    WizardStep.CONFIRM: "Confirm",
}

SSH_FORM_FIELDS = 4  # name, key file, create, cancel
NETWORK_FORM_FIELDS = 5  # name, vlan, cidr, dhcp, create
MAX_VLAN = 4094

# Options listed above the fetched items of some steps
FIXED_OPTIONS: Dict[WizardStep, List[Option]] = {
    WizardStep.SSH_KEY: [
        {"id": CREATE_NEW, "name": "+ Create new SSH key"},
        {"id": "", "name": "(no ssh key)"},
    ],
    WizardStep.NETWORK: [
        {"id": "", "name": "(No Private Network)"},
        {"id": CREATE_NEW, "name": "+ Create new private network"},
    ],
    WizardStep.FLOATING_IP: [
        {"id": NO_FLOATING_IP, "name": "(No Floating IP - no external access)"},
        {"id": CREATE_NEW, "name": "+ Create new Floating IP"},
    ],
}

PREVIOUS_STEP = {
    WizardStep.FLAVOR: WizardStep.REGION,
    WizardStep.IMAGE: WizardStep.FLAVOR,
    WizardStep.SSH_KEY: WizardStep.IMAGE,
    WizardStep.NETWORK: WizardStep.SSH_KEY,
    WizardStep.FLOATING_IP: WizardStep.NETWORK,
    WizardStep.CONFIRM: WizardStep.NAME,
}


def is_printable(key: KeyPress) -> bool:
    return bool(key.character) and len(key.character) == 1 and key.character.isprintable()


# --- Options -----------------------------------------------------------------

def step_options(w: WizardData, step: Optional[WizardStep] = None) -> List[Option]:
    """Selectable rows of a list step, after the step's filter."""
    step = w.step if step is None else step
    text = w.filter_input
    if step is WizardStep.REGION:
        items = filter_regions(w.regions, text)
    elif step is WizardStep.FLAVOR:
        items = filter_flavors(w.flavors, text)
    elif step is WizardStep.IMAGE:
        items = filter_images(w.images, text)
    elif step is WizardStep.SSH_KEY:
        items = filter_ssh_keys(w.ssh_keys, text)
    elif step is WizardStep.NETWORK:
        items = filter_networks(w.networks, text)
    elif step is WizardStep.FLOATING_IP:
        items = filter_floating_ips(w.floating_ips, text)
    else:
        return []
    return FIXED_OPTIONS.get(step, []) + items


def _filtered_start_index(w: WizardData) -> int:
    """After a filter edit the cursor lands on the first fetched item."""
    fixed = len(FIXED_OPTIONS.get(w.step, []))
    count = len(step_options(w))
    return max(0, min(fixed, count - 1))


def _clamp(w: WizardData) -> None:
    count = len(step_options(w))
    w.selected_index = max(0, min(w.selected_index, count - 1)) if count else 0


def _index_of(w: WizardData, item_id: str) -> int:
    for idx, option in enumerate(step_options(w)):
        if get_str(option, "id") == item_id:
            return idx
    return 0


def has_private_network(w: WizardData) -> bool:
    return bool(w.selected_network or w.network_request)


def routes_to_floating_ip(w: WizardData) -> bool:
    return not w.use_public_network and has_private_network(w)


# --- Lifecycle ---------------------------------------------------------------

def start(model: Model) -> Optional[Command]:
    model.wizard_runs += 1
    model.wizard = WizardData(run_id=model.wizard_runs)
    model.mode = ViewMode.WIZARD
    model.filter_mode = False
    return enter_step(model, WizardStep.REGION)


def enter_step(model: Model, step: WizardStep) -> Optional[Command]:
    """Enter ``step``: reset its transient fields and issue its loading command."""
    w = model.wizard
    w.step = step
    w.selected_index = 0
    w.filter_mode = False
    w.filter_input = ""
    w.error = ""
    w.loading = False

    if step is WizardStep.IMAGE and w.image_cache:
        w.images = images_for_region(w.image_cache, w.selected_region)
        return None
    if step is WizardStep.NETWORK:
        w.network_menu_index = 0
    if step is WizardStep.NAME:
        w.name_input = w.instance_name
        return None
    if step is WizardStep.CONFIRM:
        w.confirm_button = 0
        return None

    w.loading = True
    return FetchWizardList(w.run_id, step, model.cloud_project, w.selected_region)


def go_back(model: Model) -> Optional[Command]:
    w = model.wizard
    if w.step is WizardStep.NAME:
        previous = WizardStep.FLOATING_IP if routes_to_floating_ip(w) else WizardStep.NETWORK
    else:
        previous = PREVIOUS_STEP.get(w.step)
    if previous is None:
        return None
    return enter_step(model, previous)


def _exit_to_instances(model: Model, message: Optional[str] = None, seconds: Optional[float] = None) -> Optional[Command]:
    model.wizard = None
    note = notify(model, message, seconds) if message else None
    return batch(note, load_current_product(model, ProductType.INSTANCES))


def cancel(model: Model) -> Optional[Command]:
    """Abandon the wizard; resources created inline are kept."""
    w = model.wizard
    message = RESOURCES_KEPT if w is not None and not w.ledger.is_empty() else None
    return _exit_to_instances(model, message)


# --- Key handling ------------------------------------------------------------

def handle_key(model: Model, key: KeyPress) -> Optional[Command]:
    w = model.wizard
    if w is None:
        model.mode = ViewMode.TABLE
        return None
    if key.key == "ctrl+c":
        return Quit()
    if w.cleanup_pending:
        return _cleanup_key(model, key)
    if w.provisioning:
        return None
    if w.loading:
        in_form = w.creating_ssh_key or w.creating_network
        return cancel(model) if key.key == "escape" and not in_form else None
    if w.creating_ssh_key:
        return _ssh_form_key(model, key)
    if w.creating_network:
        return _network_form_key(model, key)
    if w.filter_mode:
        return _filter_key(model, key)
    if key.key == "escape":
        return cancel(model)
    if not w.text_input_active:
        if key.key == "q":
            return Quit()
        if key.key == "d":
            model.previous_mode = ViewMode.WIZARD
            model.mode = ViewMode.DEBUG
            model.debug_scroll = 0
            return None
    return _STEP_KEYS[w.step](model, key)


def _move(w: WizardData, delta: int) -> None:
    w.selected_index += delta
    _clamp(w)


def _filter_key(model: Model, key: KeyPress) -> Optional[Command]:
    w = model.wizard
    if key.key == "escape":
        w.filter_mode = False
        w.filter_input = ""
        w.selected_index = 0
    elif key.key == "enter":
        w.filter_mode = False
    elif key.key == "backspace":
        w.filter_input = w.filter_input[:-1]
        w.selected_index = _filtered_start_index(w)
    elif key.key in ("up", "down"):
        _move(w, -1 if key.key == "up" else 1)
    elif is_printable(key):
        w.filter_input += key.character
        w.selected_index = _filtered_start_index(w)
    return None


def _list_key(model: Model, key: KeyPress, on_select: Callable[[Model, Option], Optional[Command]]) -> Optional[Command]:
    w = model.wizard
    if key.key in ("up", "k"):
        _move(w, -1)
    elif key.key in ("down", "j"):
        _move(w, 1)
    elif key.character == "/":
        w.filter_mode = True
    elif key.key in ("left", "backspace"):
        return go_back(model)
    elif key.key == "enter":
        options = step_options(w)
        if not options:
            return None
        return on_select(model, options[w.selected_index])
    return None


def _select_region(model: Model, option: Option) -> Optional[Command]:
    w = model.wizard
    region = get_str(option, "name")
    if region != w.selected_region:
        # Everything chosen downstream belongs to the old region.
        w.selected_flavor = w.selected_flavor_name = ""
        w.selected_image = w.selected_image_name = ""
        w.selected_ssh_key = w.selected_ssh_key_name = ""
        w.selected_network = w.selected_network_name = w.selected_subnet = ""
        w.network_request = None
        w.use_public_network = True
        w.selected_floating_ip = w.selected_floating_ip_address = ""
    w.selected_region = region
    return enter_step(model, WizardStep.FLAVOR)


def _select_flavor(model: Model, option: Option) -> Optional[Command]:
    w = model.wizard
    w.selected_flavor = get_str(option, "id")
    w.selected_flavor_name = get_str(option, "name")
    return enter_step(model, WizardStep.IMAGE)


def _select_image(model: Model, option: Option) -> Optional[Command]:
    w = model.wizard
    w.selected_image = get_str(option, "id")
    w.selected_image_name = get_str(option, "name")
    return enter_step(model, WizardStep.SSH_KEY)


def _select_ssh_key(model: Model, option: Option) -> Optional[Command]:
    w = model.wizard
    key_id = get_str(option, "id")
    if key_id == CREATE_NEW:
        return open_ssh_key_form(model)
    w.selected_ssh_key = key_id
    w.selected_ssh_key_name = get_str(option, "name") if key_id else ""
    return enter_step(model, WizardStep.NETWORK)


def _select_floating_ip(model: Model, option: Option) -> Optional[Command]:
    w = model.wizard
    w.selected_floating_ip = get_str(option, "id")
    w.selected_floating_ip_address = get_str(option, "ip")
    return enter_step(model, WizardStep.NAME)


def _region_key(model: Model, key: KeyPress) -> Optional[Command]:
    return _list_key(model, key, _select_region)


def _flavor_key(model: Model, key: KeyPress) -> Optional[Command]:
    return _list_key(model, key, _select_flavor)


def _image_key(model: Model, key: KeyPress) -> Optional[Command]:
    return _list_key(model, key, _select_image)


def _ssh_key_key(model: Model, key: KeyPress) -> Optional[Command]:
    return _list_key(model, key, _select_ssh_key)


def _floating_ip_key(model: Model, key: KeyPress) -> Optional[Command]:
    return _list_key(model, key, _select_floating_ip)


# Network step: row 0 is the public network toggle, the list sits below it.

def leave_network_step(model: Model) -> Optional[Command]:
    w = model.wizard
    if not w.use_public_network and not has_private_network(w):
        w.error = "Select a private network or enable the public network"
        return None
    if routes_to_floating_ip(w):
        return enter_step(model, WizardStep.FLOATING_IP)
    w.selected_floating_ip = w.selected_floating_ip_address = ""
    return enter_step(model, WizardStep.NAME)


def _select_network(model: Model, option: Option) -> Optional[Command]:
    w = model.wizard
    network_id = get_str(option, "id")
    if network_id == CREATE_NEW:
        return open_network_form(model)
    if network_id != w.selected_network:
        w.network_request = None
        w.selected_subnet = ""
    w.selected_network = network_id
    w.selected_network_name = get_str(option, "name") if network_id else ""
    subnets = option.get("subnets") or []
    if subnets and isinstance(subnets[0], dict) and get_str(subnets[0], "id"):
        w.selected_subnet = get_str(subnets[0], "id")
    return leave_network_step(model)


def _network_key(model: Model, key: KeyPress) -> Optional[Command]:
    w = model.wizard
    if w.network_menu_index == 0:
        if key.key in ("space", " ") or key.character == " ":
            w.use_public_network = not w.use_public_network
            w.error = ""
        elif key.key in ("down", "j"):
            w.network_menu_index = 1
            w.selected_index = 0
        elif key.key == "enter":
            return leave_network_step(model)
        elif key.key in ("left", "backspace"):
            return go_back(model)
        elif key.character == "/":
            w.network_menu_index = 1
            w.filter_mode = True
        return None
    if key.key in ("up", "k") and w.selected_index == 0:
        w.network_menu_index = 0
        return None
    return _list_key(model, key, _select_network)


def _name_key(model: Model, key: KeyPress) -> Optional[Command]:
    w = model.wizard
    if key.key == "enter":
        name = w.name_input.strip()
        if not name:
            w.error = "Instance name is required"
            return None
        w.instance_name = name
        return enter_step(model, WizardStep.CONFIRM)
    if key.key == "left":
        w.instance_name = w.name_input.strip() or w.instance_name
        return go_back(model)
    if key.key == "backspace":
        w.name_input = w.name_input[:-1]
    elif key.key == "space":
        w.name_input += " "
    elif is_printable(key):
        w.name_input += key.character
        w.error = ""
    return None


def _confirm_key(model: Model, key: KeyPress) -> Optional[Command]:
    w = model.wizard
    if key.key in ("left", "right", "tab"):
        w.confirm_button = 1 - w.confirm_button
    elif key.key == "backspace":
        return enter_step(model, WizardStep.NAME)
    elif key.key == "enter":
        if w.confirm_button == 1:
            return cancel(model)
        return start_provisioning(model)
    return None


_STEP_KEYS: Dict[WizardStep, Callable[[Model, KeyPress], Optional[Command]]] = {
    WizardStep.REGION: _region_key,
    WizardStep.FLAVOR: _flavor_key,
    WizardStep.IMAGE: _image_key,
    WizardStep.SSH_KEY: _ssh_key_key,
    WizardStep.NETWORK: _network_key,
    WizardStep.FLOATING_IP: _floating_ip_key,
    WizardStep.NAME: _name_key,
    WizardStep.CONFIRM: _confirm_key,
}


# --- Inline SSH key form -------------------------------------------------------

def open_ssh_key_form(model: Model) -> Command:
    w = model.wizard
    w.creating_ssh_key = True
    w.ssh_key_form_field = 0
    w.new_ssh_key_name = ""
    w.new_ssh_key_public_key = ""
    w.local_pub_keys = []
    w.local_pub_key_index = 0
    w.error = ""
    return ListLocalKeys(w.run_id)


def close_ssh_key_form(w: WizardData) -> None:
    w.creating_ssh_key = False
    w.error = ""


def _ssh_form_key(model: Model, key: KeyPress) -> Optional[Command]:
    w = model.wizard
    field = w.ssh_key_form_field
    if key.key == "escape":
        close_ssh_key_form(w)
        return None
    if key.key == "tab" or (key.key == "down" and field != 1):
        w.ssh_key_form_field = (field + 1) % SSH_FORM_FIELDS
        return None
    if key.key == "shift+tab" or (key.key == "up" and field != 1):
        w.ssh_key_form_field = (field - 1) % SSH_FORM_FIELDS
        return None

    if field == 0:
        if key.key == "enter":
            w.ssh_key_form_field = 1
        elif key.key == "backspace":
            w.new_ssh_key_name = w.new_ssh_key_name[:-1]
        elif is_printable(key) and key.character != " ":
            w.new_ssh_key_name += key.character
        return None

    if field == 1:
        if key.key == "up":
            w.local_pub_key_index = max(0, w.local_pub_key_index - 1)
        elif key.key == "down":
            w.local_pub_key_index = max(0, min(w.local_pub_key_index + 1, len(w.local_pub_keys) - 1))
        elif key.key == "enter":
            if not w.local_pub_keys:
                w.error = "No public keys found in ~/.ssh"
                return None
            return ReadPublicKey(w.run_id, w.local_pub_keys[w.local_pub_key_index])
        return None

    if key.key != "enter":
        return None
    if field == 3:
        close_ssh_key_form(w)
        return None
    name = w.new_ssh_key_name.strip()
    if not name:
        w.error = "SSH key name is required"
        return None
    if not w.new_ssh_key_public_key:
        w.error = "Please select a public key file"
        return None
    w.error = ""
    w.loading = True
    return CreateSSHKey(w.run_id, model.cloud_project, name, w.new_ssh_key_public_key, w.selected_region)


# --- Inline network form -------------------------------------------------------

def open_network_form(model: Model) -> Optional[Command]:
    w = model.wizard
    w.creating_network = True
    w.network_form_field = 0
    w.new_network_name = ""
    w.new_network_vlan = str(random.randint(1, MAX_VLAN))
    w.new_network_cidr = "10.0.0.0/24"
    w.new_network_dhcp = True
    w.error = ""
    return None


def validate_network_form(w: WizardData) -> Optional[str]:
    if not w.new_network_name.strip():
        return "Network name is required"
    if not w.new_network_vlan.isdigit() or not 1 <= int(w.new_network_vlan) <= MAX_VLAN:
        return f"VLAN ID must be between 1 and {MAX_VLAN}"
    try:
        ipaddress.ip_network(w.new_network_cidr, strict=False)
        subnet_range(w.new_network_cidr)
    except ValueError:
        return f"Invalid CIDR: {w.new_network_cidr}"
    return None


def _network_form_key(model: Model, key: KeyPress) -> Optional[Command]:
    w = model.wizard
    field = w.network_form_field
    if key.key == "escape":
        w.creating_network = False
        w.error = ""
        return None
    if key.key in ("tab", "down"):
        w.network_form_field = (field + 1) % NETWORK_FORM_FIELDS
        return None
    if key.key in ("shift+tab", "up"):
        w.network_form_field = (field - 1) % NETWORK_FORM_FIELDS
        return None
    if key.key == "enter":
        if field < NETWORK_FORM_FIELDS - 1:
            w.network_form_field = field + 1
            return None
        error = validate_network_form(w)
        if error:
            w.error = error
            return None
        request = NetworkRequest(
            name=w.new_network_name.strip(),
            vlan_id=int(w.new_network_vlan),
            cidr=w.new_network_cidr,
            dhcp=w.new_network_dhcp,
        )
        w.error = ""
        w.loading = True
        return CreateNetwork(w.run_id, model.cloud_project, w.selected_region, request)

    if field == 3:
        if key.key == "space" or key.character == " ":
            w.new_network_dhcp = not w.new_network_dhcp
        return None
    if key.key == "backspace":
        if field == 0:
            w.new_network_name = w.new_network_name[:-1]
        elif field == 1:
            w.new_network_vlan = w.new_network_vlan[:-1]
        elif field == 2:
            w.new_network_cidr = w.new_network_cidr[:-1]
        return None
    if not is_printable(key):
        return None
    char = key.character
    if field == 0:
        w.new_network_name += char
    elif field == 1 and char.isdigit():
        candidate = w.new_network_vlan + char
        if int(candidate) <= MAX_VLAN:
            w.new_network_vlan = candidate
    elif field == 2 and (char.isdigit() or char in "./"):
        w.new_network_cidr += char
    return None


# --- Confirm: provisioning saga ------------------------------------------------

def start_provisioning(model: Model) -> Optional[Command]:
    w = model.wizard
    error = validate_plan(w)
    if error:
        w.error = error
        return None
    w.error = ""
    w.provision_plan = plan_provisioning(w)
    w.provision_position = 0
    w.provisioning = True
    logger.info(f"Provisioning {w.instance_name}: {[step.value for step in w.provision_plan]}")
    return _next_provision_command(model)


def _next_provision_command(model: Model) -> Command:
    w = model.wizard
    step = w.provision_plan[w.provision_position]
    return Provision(w.run_id, step, build_context(w, model.cloud_project))


def _apply_step_values(w: WizardData, values: Dict[str, str]) -> None:
    if values.get("network_id"):
        w.selected_network = values["network_id"]
        w.selected_network_name = values.get("network_name", w.selected_network_name)
    if values.get("subnet_id"):
        w.selected_subnet = values["subnet_id"]
    if values.get("private_ip"):
        w.created_instance_private_ip = values["private_ip"]


def on_provision_step(model: Model, msg: ProvisionStepDone) -> Optional[Command]:
    w = model.wizard
    if (
        w is None
        or msg.run_id != w.run_id
        or not w.provisioning
        or w.provision_position >= len(w.provision_plan)
        or w.provision_plan[w.provision_position] is not msg.step
    ):
        logger.debug(f"Dropping stale provisioning result for {msg.step}")
        return None

    for kind, resource_id in msg.created:
        parent = w.selected_network if kind is ResourceKind.SUBNET else ""
        w.ledger.record(kind, resource_id, w.selected_region, parent)
    _apply_step_values(w, msg.values)

    if msg.error:
        w.provisioning = False
        logger.warning(f"Provisioning step {msg.step.value} failed: {msg.error}")
        if w.ledger.is_empty():
            w.error = f"Instance creation failed: {msg.error}"
            return None
        w.cleanup_pending = True
        w.cleanup_button = 0
        w.cleanup_error = f"{msg.step.value.replace('_', ' ').capitalize()} failed: {msg.error}"
        return None

    w.provision_position += 1
    if w.provision_position < len(w.provision_plan):
        return _next_provision_command(model)

    name = w.instance_name
    logger.info(f"Instance {name} provisioned")
    return _exit_to_instances(model, f"✅ Instance {name} created")


def _cleanup_key(model: Model, key: KeyPress) -> Optional[Command]:
    w = model.wizard
    if w.loading:
        return None
    if key.key in ("left", "right", "tab"):
        w.cleanup_button = 1 - w.cleanup_button
    elif key.key == "escape" or (key.key == "enter" and w.cleanup_button == 1):
        return decline_cleanup(model)
    elif key.key == "enter":
        w.loading = True
        return Cleanup(w.run_id, model.cloud_project, tuple(w.ledger.entries))
    return None


def decline_cleanup(model: Model) -> Optional[Command]:
    logger.info("Cleanup declined; created resources kept")
    return _exit_to_instances(model, RESOURCES_KEPT)


def on_cleanup_done(model: Model, msg: CleanupDone) -> Optional[Command]:
    w = model.wizard
    if w is None or msg.run_id != w.run_id:
        return None
    return _exit_to_instances(model, cleanup_summary(msg.deleted, msg.errors), NOTIFY_LONG)


# --- Results of wizard commands ------------------------------------------------

def _current(model: Model, run_id: int) -> Optional[WizardData]:
    w = model.wizard
    if w is None or w.run_id != run_id:
        return None
    return w


def on_list_loaded(model: Model, msg: WizardListLoaded) -> Optional[Command]:
    w = _current(model, msg.run_id)
    if w is None or msg.step is not w.step:
        logger.debug(f"Dropping stale wizard list for {msg.step.name}")
        return None
    w.loading = False
    if msg.error:
        if msg.step is WizardStep.FLOATING_IP:
            w.floating_ips = []
            w.error = f"Could not load floating IPs: {msg.error}"
            return None
        w.error = f"Failed to load {STEP_TITLES[msg.step].lower()}s: {msg.error}"
        return None

    items = list(msg.items)
    if msg.step is WizardStep.REGION:
        w.regions = items
        w.image_cache = list(msg.extra)
    elif msg.step is WizardStep.FLAVOR:
        w.flavors = items
    elif msg.step is WizardStep.IMAGE:
        w.images = items
        if msg.extra:
            w.image_cache = list(msg.extra)
    elif msg.step is WizardStep.SSH_KEY:
        w.ssh_keys = items
    elif msg.step is WizardStep.NETWORK:
        w.networks = items
    elif msg.step is WizardStep.FLOATING_IP:
        w.floating_ips = items
    _clamp(w)
    return None


def on_local_keys(model: Model, msg: LocalKeysListed) -> Optional[Command]:
    w = _current(model, msg.run_id)
    if w is None:
        return None
    w.local_pub_keys = list(msg.paths)
    w.local_pub_key_index = 0
    return None


def on_public_key(model: Model, msg: PublicKeyRead) -> Optional[Command]:
    w = _current(model, msg.run_id)
    if w is None or not w.creating_ssh_key:
        return None
    if msg.error:
        w.error = f"Cannot read {msg.path}: {msg.error}"
        return None
    w.new_ssh_key_public_key = msg.content.strip()
    if not w.new_ssh_key_name:
        w.new_ssh_key_name = Path(msg.path).stem
    w.ssh_key_form_field = 2
    w.error = ""
    return None


def on_ssh_key_created(model: Model, msg: SSHKeyCreated) -> Optional[Command]:
    w = _current(model, msg.run_id)
    if w is None:
        return None
    w.loading = False
    key_id = get_str(msg.key, "id")
    if msg.error or not key_id:
        w.error = f"Failed to create SSH key: {msg.error or 'no id returned'}"
        return None
    w.ledger.record(ResourceKind.SSH_KEY, key_id, w.selected_region)
    w.ssh_keys.append(dict(msg.key))
    close_ssh_key_form(w)
    w.filter_input = ""
    w.filter_mode = False
    w.selected_index = _index_of(w, key_id)
    return notify(model, f"✅ SSH key {get_str(msg.key, 'name')} created")


def on_network_created(model: Model, msg: NetworkCreated) -> Optional[Command]:
    w = _current(model, msg.run_id)
    if w is None:
        return None
    w.loading = False
    network_id = get_str(msg.network, "id")
    if network_id:
        w.ledger.record(ResourceKind.NETWORK, network_id, w.selected_region)
    if msg.subnet_id:
        w.ledger.record(ResourceKind.SUBNET, msg.subnet_id, w.selected_region, network_id)
    if not network_id:
        w.error = f"Failed to create network: {msg.error or 'no id returned'}"
        return None

    name = w.new_network_name.strip()
    entry = dict(msg.network)
    entry.setdefault("name", name)
    entry["subnets"] = [{"id": msg.subnet_id}] if msg.subnet_id else []
    w.networks.append(entry)

    w.network_request = NetworkRequest(name, int(w.new_network_vlan), w.new_network_cidr, w.new_network_dhcp)
    w.selected_network = network_id
    w.selected_network_name = get_str(entry, "name")
    w.selected_subnet = msg.subnet_id
    w.creating_network = False
    w.filter_input = ""
    w.filter_mode = False
    w.network_menu_index = 1
    w.selected_index = _index_of(w, network_id)
    if msg.error:
        w.error = f"Network created but its subnet failed: {msg.error}. The subnet will be created on confirm."
        return None
    w.error = ""
    return notify(model, f"✅ Private network {w.selected_network_name} created")
