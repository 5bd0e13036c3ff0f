"""
Text rendering of the Model.

render(model) is a pure function returning a Frame of plain-text sections
(header, body, status, help). The Textual app escapes each section and pushes
it into a Static; nothing here touches the terminal.

Layout:
  - header: title, product bar, current project
  - body: the view for the current mode (table, detail, wizard, ...)
  - status: filter state and the current notification
  - help: key hints for the active handler
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .filters import get_str, instance_ip, project_id, project_label
from .model import (
    INSTANCE_ACTIONS, NAV_PRODUCTS, PRODUCT_LABELS, Model, ProductType, ViewMode, WizardData,
    WizardStep,
)
from .navigation import visible_rows
from .wizard import STEP_TITLES, step_options

Row = Dict[str, Any]

CURSOR = "▌"


@dataclass
class Frame:
    header: str
    body: str
    status: str
    help: str


@dataclass
class Column:
    """One table column: title, width and a cell formatter."""
    title: str
    width: int
    cell: Callable[[Model, Row], str]

    def fit(self, value: str) -> str:
        if len(value) > self.width:
            value = value[: self.width - 1] + "…"
        return f"{value:<{self.width}}"


def _field(key: str) -> Callable[[Model, Row], str]:
    return lambda model, row: get_str(row, key)


def _instance_image(model: Model, row: Row) -> str:
    image_id = get_str(row, "imageId")
    return model.image_map.get(image_id, image_id)


def _instance_address(model: Model, row: Row) -> str:
    floating = model.floating_ip_map.get(get_str(row, "id"))
    if floating:
        return f"{floating} (floating)"
    return instance_ip(row, {})


def _kube_status(model: Model, row: Row) -> str:
    status = get_str(row, "status")
    if status in ("INSTALLING", "UPDATING", "RESTARTING", "RESETTING"):
        return f"🟡 {status}"
    if status in ("ERROR", "DELETING", "SUSPENDED"):
        return f"🔴 {status}"
    return f"🟢 {status}"


def _volume_size(model: Model, row: Row) -> str:
    size = get_str(row, "size")
    return f"{size} GB" if size else ""


def _network_regions(model: Model, row: Row) -> str:
    return ", ".join(get_str(r, "region") for r in row.get("regions") or [])


COLUMNS: Dict[ProductType, List[Column]] = {
    ProductType.INSTANCES: [
        Column("Name", 25, _field("name")),
        Column("Status", 12, _field("status")),
        Column("Flavor", 15, _field("flavorId")),
        Column("Image", 20, _instance_image),
        Column("Region", 12, _field("region")),
        Column("IP Address", 28, _instance_address),
    ],
    ProductType.KUBERNETES: [
        Column("Name", 30, _field("name")),
        Column("Status", 16, _kube_status),
        Column("Version", 10, _field("version")),
        Column("Region", 12, _field("region")),
        Column("Nodes", 8, _field("nodesCount")),
    ],
    ProductType.DATABASES: [
        Column("Name", 30, _field("name")),
        Column("Engine", 12, _field("engine")),
        Column("Version", 10, _field("version")),
        Column("Plan", 12, _field("plan")),
        Column("Status", 12, _field("status")),
    ],
    ProductType.STORAGE: [
        Column("Name", 30, _field("name")),
        Column("Size", 10, _volume_size),
        Column("Type", 14, _field("type")),
        Column("Region", 12, _field("region")),
        Column("Status", 12, _field("status")),
    ],
    ProductType.NETWORKS: [
        Column("Name", 30, _field("name")),
        Column("VLAN", 6, _field("vlanId")),
        Column("Type", 10, _field("type")),
        Column("Status", 10, _field("status")),
        Column("Regions", 30, _network_regions),
    ],
    ProductType.PROJECTS: [
        Column("Project ID", 40, lambda model, row: project_id(row)),
        Column("Name", 40, lambda model, row: project_label(row)),
        Column("Status", 15, _field("status")),
    ],
}


def list_height(model: Model) -> int:
    return max(5, min(20, model.height - 15))


def _window(count: int, selected: int, height: int) -> Tuple[int, int]:
    """Start/end of the visible slice keeping ``selected`` on screen."""
    if count <= height:
        return 0, count
    start = min(max(0, selected - height // 2), count - height)
    return start, start + height


def render_table(model: Model, rows: List[Row], columns: List[Column]) -> str:
    lines = ["  " + " ".join(col.fit(col.title) for col in columns)]
    lines.append("  " + "─" * (sum(col.width for col in columns) + len(columns) - 1))
    start, end = _window(len(rows), model.selected_index, list_height(model))
    for idx in range(start, end):
        marker = ">" if idx == model.selected_index else " "
        cells = " ".join(col.fit(col.cell(model, rows[idx])) for col in columns)
        lines.append(f"{marker} {cells}".rstrip())
    if not rows:
        lines.append("  (no match)")
    elif end - start < len(rows):
        lines.append(f"  [{model.selected_index + 1}/{len(rows)}]")
    return "\n".join(lines)


def _filter_line(filter_mode: bool, filter_input: str) -> Optional[str]:
    if filter_mode:
        return f"Filter: {filter_input}{CURSOR}"
    if filter_input:
        return f"Filter: {filter_input} (press / to edit)"
    return None


def _format_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return "" if value is None else str(value)


# --- Sections ------------------------------------------------------------------

def render_header(model: Model) -> str:
    tabs = []
    for product in NAV_PRODUCTS:
        label = PRODUCT_LABELS[product]
        tabs.append(f"[{label}]" if product is model.current_product else f" {label} ")
    if model.cloud_project:
        project = f"Project: {model.cloud_project_name or model.cloud_project} ({model.cloud_project})"
    else:
        project = "Project: (none selected)"
    return f"☁  cloudbrowser    {project}\n{' '.join(tabs)}"


def render_detail(model: Model) -> str:
    data = model.detail_data or {}
    title = get_str(data, "name") or get_str(data, "id")
    lines = [f"{PRODUCT_LABELS[model.current_product]} / {title}", ""]
    width = max((len(key) for key in data), default=0)
    for key in sorted(data):
        lines.append(f"  {key:<{width}}  {_format_value(data[key])}")

    if model.current_product is ProductType.INSTANCES:
        image_id = get_str(data, "imageId")
        if image_id in model.image_map:
            lines.append(f"  {'image':<{width}}  {model.image_map[image_id]}")
        floating = model.floating_ip_map.get(get_str(data, "id"))
        if floating:
            lines.append(f"  {'floatingIp':<{width}}  {floating}")
        lines.extend(["", "Actions:"])
        for idx, (_, label) in enumerate(INSTANCE_ACTIONS):
            marker = ">" if idx == model.detail_action_index else " "
            lines.append(f"{marker} {label}")
    return "\n".join(lines)


def render_delete_confirm(model: Model) -> str:
    name = get_str(model.delete_target, "name")
    lines = [
        f"⚠️  Delete instance {name}?",
        "",
        "This cannot be undone. Type the instance name to confirm:",
        "",
        f"> {model.delete_input}{CURSOR}",
    ]
    if model.delete_error:
        lines.extend(["", f"❌ {model.delete_error}"])
    return "\n".join(lines)


def render_debug(model: Model) -> str:
    entries = model.debug_logger.get_entries() if model.debug_logger is not None else []
    visible = model.debug_visible_entries
    scroll = max(0, min(model.debug_scroll, max(0, len(entries) - visible)))
    # Scroll 0 is the newest page
    start = max(0, len(entries) - visible - scroll)
    lines = [f"Debug log ({len(entries)} entries)", ""]
    if not entries:
        lines.append("(no requests recorded yet)")
    for entry in entries[start: start + visible]:
        lines.append(entry.format())
    if len(entries) > visible:
        lines.extend(["", f"Showing {start + 1}-{min(start + visible, len(entries))} of {len(entries)}"])
    return "\n".join(lines)


# --- Wizard ----------------------------------------------------------------------

def _option_label(step: WizardStep, option: Row) -> str:
    name = get_str(option, "name")
    if step is WizardStep.REGION:
        location = get_str(option, "datacenterLocation")
        return f"{name:<12} {location}".rstrip()
    if step is WizardStep.FLAVOR and get_str(option, "vcpus"):
        return f"{name:<20} {get_str(option, 'vcpus')} vCPU  {get_str(option, 'ram')} MB RAM  {get_str(option, 'disk')} GB"
    if step is WizardStep.NETWORK and get_str(option, "vlanId"):
        return f"{name:<24} VLAN {get_str(option, 'vlanId')}"
    if step is WizardStep.FLOATING_IP and get_str(option, "ip"):
        return get_str(option, "ip")
    return name


def _wizard_summary(w: WizardData) -> List[str]:
    network = "Public" if w.use_public_network else ""
    private = w.selected_network_name or (w.network_request.name if w.network_request else "")
    if private:
        network = f"{network} + {private}" if network else private
    if w.wants_floating_ip:
        floating = w.selected_floating_ip_address or "new"
    else:
        floating = "none"
    return [
        f"  Region:      {w.selected_region}",
        f"  Flavor:      {w.selected_flavor_name or w.selected_flavor}",
        f"  Image:       {w.selected_image_name or w.selected_image}",
        f"  SSH key:     {w.selected_ssh_key_name or '(none)'}",
        f"  Network:     {network or '(none)'}",
        f"  Floating IP: {floating}",
        f"  Name:        {w.instance_name or w.name_input}",
    ]


def _render_list_step(model: Model, w: WizardData) -> List[str]:
    lines = []
    filter_line = _filter_line(w.filter_mode, w.filter_input)
    if filter_line:
        lines.extend([filter_line, ""])
    options = step_options(w)
    list_active = w.step is not WizardStep.NETWORK or w.network_menu_index == 1
    start, end = _window(len(options), w.selected_index, list_height(model))
    for idx in range(start, end):
        marker = ">" if list_active and idx == w.selected_index else " "
        lines.append(f"{marker} {_option_label(w.step, options[idx])}")
    if not options:
        lines.append("  (no match)")
    return lines


def _render_ssh_form(w: WizardData) -> List[str]:
    def mark(index: int) -> str:
        return ">" if w.ssh_key_form_field == index else " "

    lines = ["New SSH key", ""]
    cursor = CURSOR if w.ssh_key_form_field == 0 else ""
    lines.append(f"{mark(0)} Name: {w.new_ssh_key_name}{cursor}")
    lines.append(f"{mark(1)} Public key file:")
    if not w.local_pub_keys:
        lines.append("      (no ~/.ssh/*.pub files found)")
    for idx, path in enumerate(w.local_pub_keys):
        chosen = "●" if idx == w.local_pub_key_index else "○"
        lines.append(f"      {chosen} {path}")
    if w.new_ssh_key_public_key:
        lines.append(f"      loaded: {w.new_ssh_key_public_key[:40]}…")
    lines.append(f"{mark(2)} [ Create ]")
    lines.append(f"{mark(3)} [ Cancel ]")
    return lines


def _render_network_form(w: WizardData) -> List[str]:
    values = [
        ("Name", w.new_network_name),
        ("VLAN ID", w.new_network_vlan),
        ("CIDR", w.new_network_cidr),
        ("DHCP", "[x]" if w.new_network_dhcp else "[ ]"),
    ]
    lines = [f"New private network in {w.selected_region}", ""]
    for idx, (label, value) in enumerate(values):
        marker = ">" if w.network_form_field == idx else " "
        cursor = CURSOR if w.network_form_field == idx and idx < 3 else ""
        lines.append(f"{marker} {label + ':':<9} {value}{cursor}")
    marker = ">" if w.network_form_field == 4 else " "
    lines.append(f"{marker} [ Create ]")
    return lines


def _render_confirm(w: WizardData) -> List[str]:
    lines = ["Review:", ""] + _wizard_summary(w) + [""]

    if w.cleanup_pending:
        lines.append("❌ Creation failed. These resources were created:")
        for entry in w.ledger.entries:
            lines.append(f"    - {entry.kind.label}: {entry.resource_id}")
        lines.append("")
        lines.append("Delete them now?")
        buttons = ["Delete all", "Keep"]
        lines.append("  ".join(
            f"[ {label} ]" if idx == w.cleanup_button else f"  {label}  "
            for idx, label in enumerate(buttons)
        ))
        if w.cleanup_error:
            lines.extend(["", f"❌ {w.cleanup_error}"])
        return lines

    if w.provisioning:
        lines.append("Creating...")
        for idx, step in enumerate(w.provision_plan):
            if idx < w.provision_position:
                state = "✓"
            elif idx == w.provision_position:
                state = "…"
            else:
                state = " "
            lines.append(f"  [{state}] {step.value.replace('_', ' ')}")
        return lines

    buttons = ["Create", "Cancel"]
    lines.append("  ".join(
        f"[ {label} ]" if idx == w.confirm_button else f"  {label}  "
        for idx, label in enumerate(buttons)
    ))
    return lines


def render_wizard(model: Model) -> str:
    w = model.wizard
    if w is None:
        return ""
    total = len(WizardStep)
    lines = [f"Create instance - step {int(w.step) + 1}/{total}: {STEP_TITLES[w.step]}", ""]

    if w.error:
        lines.extend([f"❌ {w.error}", ""])

    if w.creating_ssh_key:
        lines.extend(_render_ssh_form(w))
    elif w.creating_network:
        lines.extend(_render_network_form(w))
    elif w.loading:
        lines.append("Loading...")
    elif w.step is WizardStep.NAME:
        lines.append(f"Instance name: {w.name_input}{CURSOR}")
    elif w.step is WizardStep.CONFIRM:
        lines.extend(_render_confirm(w))
    else:
        if w.step is WizardStep.NETWORK:
            marker = ">" if w.network_menu_index == 0 else " "
            check = "[x]" if w.use_public_network else "[ ]"
            lines.append(f"{marker} {check} Public network (direct internet access)")
            if w.network_request:
                lines.append(f"    new network: {w.network_request.name} ({w.network_request.cidr})")
            lines.append("")
        lines.extend(_render_list_step(model, w))
    return "\n".join(lines)


# --- Frame -------------------------------------------------------------------------

HELP = {
    ViewMode.PROJECT_SELECT: "enter select  d set default  / filter  r refresh  esc back  q quit",
    ViewMode.TABLE: "←/→ product  ↑/↓ move  enter detail  / filter  r refresh  c create  del delete  p projects  d debug  q quit",
    ViewMode.DETAIL: "↑/↓ action  enter run  r refresh  del delete  esc back  d debug  q quit",
    ViewMode.LOADING: "q quit",
    ViewMode.ERROR: "←/→ product  r retry  p projects  d debug  q quit",
    ViewMode.EMPTY: "←/→ product  r refresh  c create  p projects  d debug  q quit",
    ViewMode.DELETE_CONFIRM: "type the name  enter delete  esc cancel",
    ViewMode.DEBUG: "↑/↓ scroll  c clear  esc/d close  q quit",
}


def render_help(model: Model) -> str:
    if model.filter_mode:
        return "type to filter  enter keep  esc clear"
    if model.mode is ViewMode.WIZARD and model.wizard is not None:
        w = model.wizard
        if w.cleanup_pending:
            return "←/→ choose  enter confirm"
        if w.provisioning:
            return "creating, please wait"
        if w.creating_ssh_key:
            return "tab next field  ↑/↓ choose file  enter select  esc close"
        if w.creating_network:
            return "tab next field  space toggle DHCP  enter create  esc close"
        if w.filter_mode:
            return "type to filter  enter keep  esc clear"
        if w.step is WizardStep.NAME:
            return "type a name  enter next  ← back  esc cancel"
        if w.step is WizardStep.CONFIRM:
            return "←/→ choose  enter confirm  backspace back  esc cancel"
        if w.step is WizardStep.NETWORK:
            return "space toggle public  ↑/↓ move  enter next  ← back  / filter  esc cancel"
        return "↑/↓ move  enter next  ← back  / filter  esc cancel"
    return HELP.get(model.mode, "q quit")


def render_status(model: Model) -> str:
    parts = []
    if model.mode in (ViewMode.TABLE, ViewMode.PROJECT_SELECT):
        filter_line = _filter_line(model.filter_mode, model.filter_input)
        if filter_line:
            parts.append(filter_line)
    if model.notification:
        parts.append(model.notification)
    return "  ".join(parts)


def render_body(model: Model) -> str:
    mode = model.mode
    if mode is ViewMode.LOADING:
        return f"Loading {PRODUCT_LABELS[model.current_product].lower()}..."
    if mode is ViewMode.ERROR:
        return f"❌ {model.error_message}\n\nPress r to retry or p to choose another project."
    if mode is ViewMode.EMPTY:
        return f"No {PRODUCT_LABELS[model.current_product].lower()} found in this project."
    if mode is ViewMode.PROJECT_SELECT:
        rows = visible_rows(model)
        return "Select a cloud project\n\n" + render_table(model, rows, COLUMNS[ProductType.PROJECTS])
    if mode is ViewMode.TABLE:
        rows = visible_rows(model)
        title = f"{PRODUCT_LABELS[model.current_product]} ({len(rows)})"
        return f"{title}\n\n" + render_table(model, rows, COLUMNS[model.current_product])
    if mode is ViewMode.DETAIL:
        return render_detail(model)
    if mode is ViewMode.WIZARD:
        return render_wizard(model)
    if mode is ViewMode.DELETE_CONFIRM:
        return render_delete_confirm(model)
    if mode is ViewMode.DEBUG:
        return render_debug(model)
    return ""


def render(model: Model) -> Frame:
    return Frame(
        header=render_header(model),
        body=render_body(model),
        status=render_status(model),
        help=render_help(model),
    )
