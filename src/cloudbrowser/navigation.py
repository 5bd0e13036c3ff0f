"""State transitions shared by the reducer and the wizard."""

import time
from typing import Any, Dict, List, Optional

from .commands import ClearNotificationAfter, Command, FetchProductData, FetchProjects, Tick
from .filters import filter_projects, filter_rows
from .model import Model, ProductType, ViewMode

NOTIFY_SHORT = 3
NOTIFY_LONG = 30


def notify(model: Model, text: str, seconds: Optional[float] = None) -> Command:
    """Show a transient notification and schedule its removal."""
    if seconds is None:
        seconds = model.notification_seconds
    model.notification_seq += 1
    model.notification = text
    model.notification_expiry = time.time() + seconds
    return ClearNotificationAfter(seconds, model.notification_seq)


def reset_filter(model: Model) -> None:
    model.filter_mode = False
    model.filter_input = ""


def visible_rows(model: Model) -> List[Dict[str, Any]]:
    """Rows of the current list after the text filter; never mutates the cache."""
    if model.mode is ViewMode.PROJECT_SELECT or model.current_product is ProductType.PROJECTS:
        return filter_projects(model.projects, model.filter_input)
    return filter_rows(model.current_data, model.filter_input)


def clamp_selection(model: Model) -> None:
    count = len(visible_rows(model))
    model.selected_index = max(0, min(model.selected_index, count - 1)) if count else 0


def load_current_product(model: Model, product: ProductType) -> Command:
    """Switch to ``product`` and fetch it from scratch."""
    model.current_product = product
    model.mode = ViewMode.LOADING
    model.current_data = []
    model.detail_data = None
    model.image_map = {}
    model.floating_ip_map = {}
    model.selected_index = 0
    model.detail_action_index = 0
    model.refresh_item_id = ""
    model.error_message = ""
    reset_filter(model)
    # A new load supersedes any running auto-refresh chain.
    model.refresh_generation += 1
    model.refresh_armed = False
    if product is ProductType.PROJECTS:
        return FetchProjects()
    return FetchProductData(product, model.cloud_project)


def arm_refresh(model: Model) -> Optional[Command]:
    """Start the auto-refresh chain for the instance list unless one is running."""
    if model.current_product is not ProductType.INSTANCES or model.refresh_armed:
        return None
    model.refresh_generation += 1
    model.refresh_armed = True
    return Tick(model.refresh_interval, ProductType.INSTANCES, model.refresh_generation)


def resume(model: Model, mode: ViewMode) -> Optional[Command]:
    """Return to ``mode`` after a modal view closes."""
    model.mode = mode
    if mode is ViewMode.TABLE:
        return arm_refresh(model)
    return None
