"""
The reducer: update(model, message) -> (model, command).

update() is the only place the Model changes. It never performs I/O; every
effect is returned as a Command for the executor to run, and its outcome
comes back later as another Message.

Key handling selects one active handler per keypress, in priority order:
wizard, delete confirmation, debug view, filter input, then the default
navigation handler. The active handler sees every key, so global shortcuts
never fire while the user is typing into a field.

Fetch results carry the product (and project) they were requested for; a
result that no longer matches the live view is dropped.
"""

import logging
from typing import Callable, Dict, Optional, Tuple, Type

from . import wizard
from .commands import (
    ClearDebugLog, Command, DeleteInstance, EnrichInstances, FetchProductData,
    InstanceAction, Quit, RunSSH, SaveDefaultProject, Tick, batch,
)
from .filters import get_str, instance_ip, project_id, project_label, sort_by_name, ssh_user_for_image
from .messages import (
    CleanupDone, ClearNotification, DataLoaded, DebugLogCleared, DefaultProjectSaved,
    InstanceActionDone, InstanceDeleted, InstancesEnriched, KeyPress, LocalKeysListed, Message,
    NetworkCreated, ProjectsLoaded, ProvisionStepDone, PublicKeyRead, RefreshTick, SSHFinished,
    SSHKeyCreated, WindowResized, WizardListLoaded,
)
from .model import (
    INSTANCE_ACTIONS, NAV_PRODUCTS, PRODUCT_LABELS, Model, ProductType, ViewMode, creation_command,
)
from .navigation import (
    NOTIFY_SHORT, clamp_selection, load_current_product, notify, reset_filter, resume,
    visible_rows,
)

logger = logging.getLogger(__name__)

KeyHandler = Callable[[Model, KeyPress], Optional[Command]]

# Views whose contents a fetch result may replace
FOREGROUND_MODES = (ViewMode.LOADING, ViewMode.TABLE, ViewMode.DETAIL, ViewMode.EMPTY, ViewMode.ERROR)


def init(model: Model) -> Optional[Command]:
    """First command: the default project's instances, or the project list."""
    if model.cloud_project:
        return load_current_product(model, ProductType.INSTANCES)
    return _open_projects(model)


def update(model: Model, msg: Message) -> Tuple[Model, Optional[Command]]:
    handler = _HANDLERS.get(type(msg))
    if handler is None:
        logger.debug(f"Ignoring unhandled message {type(msg).__name__}")
        return model, None
    return model, handler(model, msg)


# --- Keys -------------------------------------------------------------------------

def select_key_handler(model: Model) -> KeyHandler:
    if model.mode is ViewMode.WIZARD:
        return wizard.handle_key
    if model.mode is ViewMode.DELETE_CONFIRM:
        return _delete_confirm_key
    if model.mode is ViewMode.DEBUG:
        return _debug_key
    if model.filter_mode:
        return _filter_key
    return _default_key


def _on_key(model: Model, msg: KeyPress) -> Optional[Command]:
    return select_key_handler(model)(model, msg)


def _move_selection(model: Model, delta: int) -> None:
    if model.mode is ViewMode.DETAIL:
        if model.current_product is ProductType.INSTANCES:
            last = len(INSTANCE_ACTIONS) - 1
            model.detail_action_index = max(0, min(model.detail_action_index + delta, last))
        return
    model.selected_index += delta
    clamp_selection(model)


def _selected_row(model: Model) -> Optional[dict]:
    rows = visible_rows(model)
    if 0 <= model.selected_index < len(rows):
        return rows[model.selected_index]
    return None


def _open_projects(model: Model) -> Command:
    return load_current_product(model, ProductType.PROJECTS)


def _open_debug(model: Model) -> None:
    model.previous_mode = model.mode
    model.mode = ViewMode.DEBUG
    model.debug_scroll = 0


def _switch_product(model: Model, delta: int) -> Optional[Command]:
    if not model.cloud_project or model.mode is ViewMode.PROJECT_SELECT:
        return None
    if model.current_product in NAV_PRODUCTS:
        index = NAV_PRODUCTS.index(model.current_product)
    else:
        index = 0
    product = NAV_PRODUCTS[(index + delta) % len(NAV_PRODUCTS)]
    return load_current_product(model, product)


def _choose_project(model: Model) -> Optional[Command]:
    project = _selected_row(model)
    if project is None:
        return None
    model.cloud_project = project_id(project)
    model.cloud_project_name = project_label(project)
    logger.info(f"Selected project {model.cloud_project}")
    return load_current_product(model, ProductType.INSTANCES)


def _save_default_project(model: Model) -> Optional[Command]:
    project = _selected_row(model)
    if project is None:
        return None
    return SaveDefaultProject(project_id(project), project_label(project))


def _refresh(model: Model) -> Optional[Command]:
    if model.mode is ViewMode.PROJECT_SELECT or model.current_product is ProductType.PROJECTS:
        return _open_projects(model)
    if not model.cloud_project:
        return None
    if model.mode is ViewMode.DETAIL and model.detail_data:
        model.refresh_item_id = get_str(model.detail_data, "id")
    model.mode = ViewMode.LOADING
    return FetchProductData(model.current_product, model.cloud_project)


def _open_delete_confirm(model: Model) -> Optional[Command]:
    if model.current_product is not ProductType.INSTANCES:
        return None
    target = model.detail_data if model.mode is ViewMode.DETAIL else _selected_row(model)
    if not target:
        return None
    model.delete_target = target
    model.delete_input = ""
    model.delete_error = ""
    model.previous_mode = model.mode
    model.mode = ViewMode.DELETE_CONFIRM
    return None


def _run_instance_action(model: Model) -> Optional[Command]:
    instance = model.detail_data
    if not instance:
        return None
    action = INSTANCE_ACTIONS[model.detail_action_index][0]
    name = get_str(instance, "name")
    instance_id = get_str(instance, "id")

    if action == "ssh":
        ip = instance_ip(instance, model.floating_ip_map)
        if not ip:
            return notify(model, f"❌ No IP address available for {name}")
        image_id = get_str(instance, "imageId")
        user = ssh_user_for_image(model.image_map.get(image_id, image_id))
        return batch(
            notify(model, f"🔐 Connecting to {name} ({user}@{ip})..."),
            RunSSH(user, ip, name),
        )
    if action == "reboot":
        return batch(
            notify(model, f"🔄 Rebooting {name}..."),
            InstanceAction(model.cloud_project, instance_id, name, "reboot"),
        )
    if action == "stop_or_start":
        verb = "start" if get_str(instance, "status") == "SHUTOFF" else "stop"
        label = "▶️ Starting" if verb == "start" else "⏹️ Stopping"
        return batch(
            notify(model, f"{label} {name}..."),
            InstanceAction(model.cloud_project, instance_id, name, verb),
        )
    return None


def _default_key(model: Model, key: KeyPress) -> Optional[Command]:
    k = key.key
    if k in ("q", "ctrl+c"):
        return Quit()
    if k == "d":
        if model.mode is ViewMode.PROJECT_SELECT:
            return _save_default_project(model)
        _open_debug(model)
        return None
    if k == "p":
        return _open_projects(model)
    if k in ("left", "right"):
        return _switch_product(model, -1 if k == "left" else 1)
    if k in ("up", "k"):
        _move_selection(model, -1)
        return None
    if k in ("down", "j"):
        _move_selection(model, 1)
        return None
    if k == "r":
        return _refresh(model)
    if key.character == "/":
        if model.mode in (ViewMode.TABLE, ViewMode.PROJECT_SELECT):
            model.filter_mode = True
        return None
    if k == "escape":
        return _escape(model)
    if k == "c":
        if not model.cloud_project or model.mode not in (ViewMode.TABLE, ViewMode.EMPTY, ViewMode.DETAIL):
            return None
        if model.current_product is ProductType.INSTANCES:
            return wizard.start(model)
        # Other products are created with the ovhcloud CLI once the app has exited.
        command = creation_command(model.current_product, model.cloud_project)
        return Quit(command) if command else None
    if k in ("delete", "backspace"):
        if model.mode in (ViewMode.TABLE, ViewMode.DETAIL):
            return _open_delete_confirm(model)
        return None
    if k == "enter":
        if model.mode is ViewMode.PROJECT_SELECT:
            return _choose_project(model)
        if model.mode is ViewMode.TABLE:
            row = _selected_row(model)
            if row is not None:
                model.detail_data = row
                model.detail_action_index = 0
                model.mode = ViewMode.DETAIL
            return None
        if model.mode is ViewMode.DETAIL and model.current_product is ProductType.INSTANCES:
            return _run_instance_action(model)
    return None


def _escape(model: Model) -> Optional[Command]:
    if model.filter_input:
        reset_filter(model)
        model.selected_index = 0
        return None
    if model.mode is ViewMode.DETAIL:
        model.detail_data = None
        return resume(model, ViewMode.TABLE)
    if model.mode is ViewMode.PROJECT_SELECT and model.cloud_project:
        return load_current_product(model, ProductType.INSTANCES)
    return None


def _filter_key(model: Model, key: KeyPress) -> Optional[Command]:
    if key.key == "ctrl+c":
        return Quit()
    if key.key == "escape":
        reset_filter(model)
    elif key.key == "enter":
        model.filter_mode = False
    elif key.key == "backspace":
        model.filter_input = model.filter_input[:-1]
    elif key.key in ("up", "down"):
        _move_selection(model, -1 if key.key == "up" else 1)
        return None
    elif wizard.is_printable(key):
        model.filter_input += key.character
    else:
        return None
    model.selected_index = 0
    return None


def _delete_confirm_key(model: Model, key: KeyPress) -> Optional[Command]:
    if key.key == "ctrl+c":
        return Quit()
    if key.key == "escape":
        model.delete_target = None
        model.delete_input = ""
        model.delete_error = ""
        return resume(model, model.previous_mode)
    if key.key == "enter":
        target = model.delete_target or {}
        name = get_str(target, "name")
        if model.delete_input != name:
            model.delete_error = "Name does not match"
            return None
        model.mode = ViewMode.LOADING
        return DeleteInstance(model.cloud_project, get_str(target, "id"), name)
    if key.key == "backspace":
        model.delete_input = model.delete_input[:-1]
    elif wizard.is_printable(key):
        model.delete_input += key.character
    model.delete_error = ""
    return None


def _debug_key(model: Model, key: KeyPress) -> Optional[Command]:
    if key.key in ("escape", "d"):
        return resume(model, model.previous_mode)
    if key.key in ("q", "ctrl+c"):
        return Quit()
    # debug_scroll counts back from the newest entry: up shows older requests.
    if key.key in ("up", "k"):
        count = len(model.debug_logger) if model.debug_logger is not None else 0
        max_scroll = max(0, count - model.debug_visible_entries)
        model.debug_scroll = min(model.debug_scroll + 1, max_scroll)
    elif key.key in ("down", "j"):
        model.debug_scroll = max(0, model.debug_scroll - 1)
    elif key.key == "c":
        model.debug_scroll = 0
        return ClearDebugLog()
    return None


# --- Browsing results -------------------------------------------------------------

def _settle(model: Model, mode: ViewMode) -> None:
    """Show ``mode``, or make it the view the debug log returns to."""
    if model.mode is ViewMode.DEBUG:
        model.previous_mode = mode
    else:
        model.mode = mode


def _on_projects_loaded(model: Model, msg: ProjectsLoaded) -> Optional[Command]:
    if model.current_product is not ProductType.PROJECTS:
        logger.debug("Dropping stale project list")
        return None
    if msg.error:
        _settle(model, ViewMode.ERROR)
        model.error_message = f"Failed to load projects: {msg.error}"
        return None
    if not msg.projects:
        _settle(model, ViewMode.ERROR)
        model.error_message = "No projects found"
        return None
    model.projects = sorted(msg.projects, key=lambda p: project_label(p).lower())
    _settle(model, ViewMode.PROJECT_SELECT)
    model.selected_index = 0
    for index, project in enumerate(model.projects):
        if project_id(project) == model.cloud_project:
            model.selected_index = index
            break
    return None


def _is_stale(model: Model, for_product: ProductType, project: str) -> bool:
    return for_product is not model.current_product or project != model.cloud_project


def _on_data_loaded(model: Model, msg: DataLoaded) -> Optional[Command]:
    if _is_stale(model, msg.for_product, msg.project_id):
        logger.debug(f"Dropping stale {msg.for_product.value} data")
        return None
    if model.mode is ViewMode.DEBUG and model.previous_mode in FOREGROUND_MODES:
        # Apply the result to the view under the debug log, then reopen the log.
        model.mode = model.previous_mode
        cmd = _apply_data(model, msg)
        model.previous_mode, model.mode = model.mode, ViewMode.DEBUG
        return cmd
    return _apply_data(model, msg)


def _apply_data(model: Model, msg: DataLoaded) -> Optional[Command]:
    foreground = model.mode in FOREGROUND_MODES
    label = PRODUCT_LABELS[msg.for_product]

    if msg.error:
        if foreground:
            model.mode = ViewMode.ERROR
            model.error_message = f"Failed to load {label.lower()}: {msg.error}"
        else:
            logger.warning(f"Background refresh of {label.lower()} failed: {msg.error}")
        model.refresh_item_id = ""
        return None

    model.current_data = sort_by_name(msg.data)
    enrich = None
    if msg.for_product is ProductType.INSTANCES and model.current_data:
        regions = tuple(sorted({get_str(row, "region") for row in model.current_data} - {""}))
        enrich = EnrichInstances(msg.for_product, msg.project_id, regions)

    if not foreground:
        return enrich

    if model.refresh_item_id:
        item_id, model.refresh_item_id = model.refresh_item_id, ""
        for row in model.current_data:
            if get_str(row, "id") == item_id:
                model.detail_data = row
                model.mode = ViewMode.DETAIL
                return enrich

    if not model.current_data:
        model.mode = ViewMode.EMPTY
        return None
    if model.mode is ViewMode.DETAIL:
        return enrich
    clamp_selection(model)
    return batch(enrich, resume(model, ViewMode.TABLE))


def _on_instances_enriched(model: Model, msg: InstancesEnriched) -> Optional[Command]:
    if _is_stale(model, msg.for_product, msg.project_id):
        return None
    # Rows keep their name order, so the cursor stays on the same row.
    model.image_map = dict(msg.image_map)
    model.floating_ip_map = dict(msg.floating_ip_map)
    return None


def _on_refresh_tick(model: Model, msg: RefreshTick) -> Optional[Command]:
    if msg.generation != model.refresh_generation:
        return None
    if (
        model.mode is not ViewMode.TABLE
        or model.current_product is not ProductType.INSTANCES
        or msg.for_product is not model.current_product
    ):
        model.refresh_armed = False
        return None
    return batch(
        FetchProductData(model.current_product, model.cloud_project),
        Tick(model.refresh_interval, msg.for_product, msg.generation),
    )


def _on_clear_notification(model: Model, msg: ClearNotification) -> Optional[Command]:
    if msg.seq == model.notification_seq:
        model.notification = ""
        model.notification_expiry = 0.0
    return None


def _on_default_project_saved(model: Model, msg: DefaultProjectSaved) -> Optional[Command]:
    if msg.error:
        return notify(model, f"❌ Failed to save default project: {msg.error}")
    model.cloud_project = msg.project_id
    model.cloud_project_name = msg.project_name
    logger.info(f"Default project is now {msg.project_id}")
    return notify(model, f"✅ Default project set: {msg.project_name or msg.project_id}", NOTIFY_SHORT)


def _on_instance_deleted(model: Model, msg: InstanceDeleted) -> Optional[Command]:
    model.delete_target = None
    model.delete_input = ""
    if msg.error:
        note = notify(model, f"❌ Failed to delete {msg.name}: {msg.error}")
    else:
        note = notify(model, f"🗑️ Instance {msg.name} deleted")
    if model.current_product is not ProductType.INSTANCES:
        return note
    return batch(note, load_current_product(model, ProductType.INSTANCES))


ACTION_DONE = {
    "reboot": "🔄 Reboot requested for",
    "start": "▶️ Start requested for",
    "stop": "⏹️ Stop requested for",
}


def _on_instance_action_done(model: Model, msg: InstanceActionDone) -> Optional[Command]:
    if msg.error:
        return notify(model, f"❌ Failed to {msg.action} {msg.name}: {msg.error}")
    note = notify(model, f"✅ {ACTION_DONE.get(msg.action, msg.action)} {msg.name}")
    if model.current_product is ProductType.INSTANCES and model.mode in FOREGROUND_MODES:
        return batch(note, _refresh(model))
    return note


def _on_ssh_finished(model: Model, msg: SSHFinished) -> Optional[Command]:
    if msg.error:
        return notify(model, f"❌ SSH to {msg.name} failed: {msg.error}")
    return notify(model, f"👋 SSH session to {msg.name} closed")


def _on_debug_log_cleared(model: Model, msg: DebugLogCleared) -> Optional[Command]:
    model.debug_scroll = 0
    return notify(model, "Debug log cleared", NOTIFY_SHORT)


def _on_resize(model: Model, msg: WindowResized) -> Optional[Command]:
    model.width = msg.width
    model.height = msg.height
    return None


_HANDLERS: Dict[Type[Message], Callable[[Model, Message], Optional[Command]]] = {
    KeyPress: _on_key,
    WindowResized: _on_resize,
    ProjectsLoaded: _on_projects_loaded,
    DataLoaded: _on_data_loaded,
    InstancesEnriched: _on_instances_enriched,
    RefreshTick: _on_refresh_tick,
    ClearNotification: _on_clear_notification,
    DefaultProjectSaved: _on_default_project_saved,
    InstanceDeleted: _on_instance_deleted,
    InstanceActionDone: _on_instance_action_done,
    SSHFinished: _on_ssh_finished,
    DebugLogCleared: _on_debug_log_cleared,
    WizardListLoaded: wizard.on_list_loaded,
    LocalKeysListed: wizard.on_local_keys,
    PublicKeyRead: wizard.on_public_key,
    SSHKeyCreated: wizard.on_ssh_key_created,
    NetworkCreated: wizard.on_network_created,
    ProvisionStepDone: wizard.on_provision_step,
    CleanupDone: wizard.on_cleanup_done,
}


def handled_message_types() -> Tuple[Type[Message], ...]:
    return tuple(_HANDLERS)
