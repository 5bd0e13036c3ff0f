from cloudbrowser.commands import (
    Batch, ClearDebugLog, ClearNotificationAfter, DeleteInstance, EnrichInstances, FetchProductData,
    FetchProjects, FetchWizardList, InstanceAction, Quit, RunSSH, SaveDefaultProject, Tick,
)
from cloudbrowser.debug_log import DebugLogEntry
from cloudbrowser.messages import (
    ClearNotification, DataLoaded, DefaultProjectSaved, InstanceActionDone, InstanceDeleted,
    InstancesEnriched, Message, ProjectsLoaded, RefreshTick, SSHFinished, WindowResized,
)
from cloudbrowser.model import Model, ProductType, ViewMode, WizardStep
from cloudbrowser.navigation import notify, visible_rows
from cloudbrowser.update import handled_message_types, init, select_key_handler, update

from conftest import press

ROWS = [
    {"id": "i-2", "name": "beta", "region": "SBG5"},
    {"id": "i-1", "name": "alpha", "region": "GRA11"},
]


def send(model, msg):
    model, cmd = update(model, msg)
    return cmd


def keys(model, *names):
    cmd = None
    for name in names:
        cmd = send(model, press(name))
    return cmd


def commands(cmd):
    if cmd is None:
        return []
    if isinstance(cmd, Batch):
        return list(cmd.commands)
    return [cmd]


class TestStartup:
    def test_default_project_opens_instances(self, model):
        cmd = init(model)
        assert cmd == FetchProductData(ProductType.INSTANCES, "proj-1")
        assert model.mode is ViewMode.LOADING

    def test_no_project_loads_project_list(self):
        model = Model()
        assert init(model) == FetchProjects()
        assert model.current_product is ProductType.PROJECTS

    def test_unknown_message_is_noop(self, model):
        before = Model(**{**model.__dict__})
        new_model, cmd = update(model, Message())
        assert cmd is None
        assert new_model == before

    def test_every_message_type_has_a_handler(self):
        assert DataLoaded in handled_message_types()
        assert WindowResized in handled_message_types()


class TestDataLoaded:
    def test_rows_sorted_enriched_and_refresh_armed(self, model):
        init(model)
        cmd = send(model, DataLoaded(ProductType.INSTANCES, "proj-1", ROWS))

        assert model.mode is ViewMode.TABLE
        assert [r["name"] for r in model.current_data] == ["alpha", "beta"]
        enrich, tick = commands(cmd)
        assert enrich == EnrichInstances(ProductType.INSTANCES, "proj-1", ("GRA11", "SBG5"))
        assert tick == Tick(10.0, ProductType.INSTANCES, model.refresh_generation)
        assert model.refresh_armed

    def test_stale_product_dropped(self, model):
        init(model)
        keys(model, "right")
        assert model.current_product is ProductType.KUBERNETES
        cmd = send(model, DataLoaded(ProductType.INSTANCES, "proj-1", ROWS))
        assert cmd is None
        assert model.current_data == []
        assert model.mode is ViewMode.LOADING

    def test_stale_project_dropped(self, model):
        init(model)
        assert send(model, DataLoaded(ProductType.INSTANCES, "other", ROWS)) is None
        assert model.current_data == []

    def test_empty_list_is_empty_view(self, model):
        init(model)
        assert send(model, DataLoaded(ProductType.INSTANCES, "proj-1", [])) is None
        assert model.mode is ViewMode.EMPTY

    def test_error_view(self, model):
        init(model)
        send(model, DataLoaded(ProductType.INSTANCES, "proj-1", error="boom (HTTP 500)"))
        assert model.mode is ViewMode.ERROR
        assert model.error_message == "Failed to load instances: boom (HTTP 500)"

    def test_non_instance_products_not_enriched(self, model):
        init(model)
        keys(model, "right")
        cmd = send(model, DataLoaded(ProductType.KUBERNETES, "proj-1", [{"id": "k", "name": "kube"}]))
        assert cmd is None
        assert model.mode is ViewMode.TABLE

    def test_background_refresh_keeps_wizard_open(self, table_model):
        keys(table_model, "c")
        cmd = send(table_model, DataLoaded(ProductType.INSTANCES, "proj-1", ROWS))
        assert table_model.mode is ViewMode.WIZARD
        assert len(table_model.current_data) == 2
        assert isinstance(cmd, EnrichInstances)

    def test_enrichment_keeps_cursor(self, table_model):
        table_model.selected_index = 2
        send(table_model, InstancesEnriched(ProductType.INSTANCES, "proj-1", {"img-1": "Ubuntu"}, {"i-1": "1.2.3.4"}))
        assert table_model.selected_index == 2
        assert table_model.image_map == {"img-1": "Ubuntu"}
        assert table_model.floating_ip_map == {"i-1": "1.2.3.4"}

    def test_stale_enrichment_dropped(self, table_model):
        send(table_model, InstancesEnriched(ProductType.INSTANCES, "old-project", {"x": "y"}))
        assert table_model.image_map == {}


class TestAutoRefresh:
    def loaded(self, model):
        init(model)
        send(model, DataLoaded(ProductType.INSTANCES, "proj-1", ROWS))
        return model.refresh_generation

    def test_tick_refetches_and_reschedules(self, model):
        generation = self.loaded(model)
        cmd = send(model, RefreshTick(ProductType.INSTANCES, generation))
        assert commands(cmd) == [
            FetchProductData(ProductType.INSTANCES, "proj-1"),
            Tick(10.0, ProductType.INSTANCES, generation),
        ]

    def test_chain_dies_after_navigating_away(self, model):
        generation = self.loaded(model)
        keys(model, "right")
        assert send(model, RefreshTick(ProductType.INSTANCES, generation)) is None

    def test_chain_dies_in_detail_and_rearms_on_return(self, model):
        generation = self.loaded(model)
        keys(model, "enter")
        assert model.mode is ViewMode.DETAIL
        assert send(model, RefreshTick(ProductType.INSTANCES, generation)) is None
        assert not model.refresh_armed

        cmd = keys(model, "escape")
        assert model.mode is ViewMode.TABLE
        assert cmd == Tick(10.0, ProductType.INSTANCES, model.refresh_generation)
        assert model.refresh_generation != generation

    def test_background_refresh_does_not_start_second_chain(self, model):
        generation = self.loaded(model)
        send(model, RefreshTick(ProductType.INSTANCES, generation))
        cmd = send(model, DataLoaded(ProductType.INSTANCES, "proj-1", ROWS))
        assert [c for c in commands(cmd) if isinstance(c, Tick)] == []
        assert model.refresh_generation == generation


class TestNavigation:
    def test_selection_clamps(self, table_model):
        keys(table_model, "down", "down", "down", "j")
        assert table_model.selected_index == 2
        keys(table_model, "up", "k", "k", "up")
        assert table_model.selected_index == 0

    def test_product_switch_wraps(self, table_model):
        assert keys(table_model, "left") == FetchProductData(ProductType.NETWORKS, "proj-1")
        assert keys(table_model, "right") == FetchProductData(ProductType.INSTANCES, "proj-1")

    def test_quit(self, table_model):
        assert keys(table_model, "q") == Quit()

    def test_enter_opens_detail(self, table_model):
        keys(table_model, "down", "enter")
        assert table_model.mode is ViewMode.DETAIL
        assert table_model.detail_data["id"] == "i-2"

    def test_refresh_from_detail_returns_to_same_item(self, table_model):
        keys(table_model, "down", "enter")
        cmd = keys(table_model, "r")
        assert cmd == FetchProductData(ProductType.INSTANCES, "proj-1")
        assert table_model.mode is ViewMode.LOADING

        updated = [dict(row, status="REBOOT") for row in table_model.current_data]
        send(table_model, DataLoaded(ProductType.INSTANCES, "proj-1", updated))
        assert table_model.mode is ViewMode.DETAIL
        assert table_model.detail_data["id"] == "i-2"
        assert table_model.detail_data["status"] == "REBOOT"

    def test_resize(self, model):
        send(model, WindowResized(80, 24))
        assert (model.width, model.height) == (80, 24)


class TestFilter:
    def test_filter_narrows_without_mutating(self, table_model):
        keys(table_model, "slash", "e", "t")
        assert table_model.filter_mode
        assert [r["name"] for r in visible_rows(table_model)] == ["beta"]
        assert len(table_model.current_data) == 3
        assert table_model.selected_index == 0

    def test_global_keys_are_text_while_filtering(self, table_model):
        cmd = keys(table_model, "slash", "q", "d")
        assert cmd is None
        assert table_model.filter_input == "qd"
        assert table_model.mode is ViewMode.TABLE

    def test_enter_keeps_escape_clears(self, table_model):
        keys(table_model, "slash", "g", "enter")
        assert not table_model.filter_mode
        assert table_model.filter_input == "g"
        keys(table_model, "escape")
        assert table_model.filter_input == ""

    def test_backspace(self, table_model):
        keys(table_model, "slash", "a", "b", "backspace")
        assert table_model.filter_input == "a"

    def test_handler_selection_order(self, table_model):
        table_model.filter_mode = True
        table_model.mode = ViewMode.DEBUG
        assert select_key_handler(table_model).__name__ == "_debug_key"


class TestDeleteConfirm:
    def test_name_must_match(self, table_model):
        keys(table_model, "delete", "a", "l", "p", "enter")
        assert table_model.mode is ViewMode.DELETE_CONFIRM
        assert table_model.delete_error == "Name does not match"

        cmd = keys(table_model, "h", "a", "enter")
        assert cmd == DeleteInstance("proj-1", "i-1", "alpha")
        assert table_model.mode is ViewMode.LOADING

    def test_escape_cancels(self, table_model):
        keys(table_model, "backspace", "x", "escape")
        assert table_model.mode is ViewMode.TABLE
        assert table_model.delete_target is None

    def test_result_notifies_and_refetches(self, table_model):
        cmd = send(table_model, InstanceDeleted("i-1", "alpha"))
        note, fetch = commands(cmd)
        assert isinstance(note, ClearNotificationAfter)
        assert fetch == FetchProductData(ProductType.INSTANCES, "proj-1")
        assert table_model.notification == "🗑️ Instance alpha deleted"

    def test_failure_notifies(self, table_model):
        send(table_model, InstanceDeleted("i-1", "alpha", error="forbidden"))
        assert table_model.notification.startswith("❌ Failed to delete alpha")

    def test_only_for_instances(self, table_model):
        table_model.current_product = ProductType.STORAGE
        keys(table_model, "delete")
        assert table_model.mode is ViewMode.TABLE


class TestInstanceActions:
    def detail(self, model, index=0):
        model.selected_index = index
        keys(model, "enter")

    def test_reboot(self, table_model):
        self.detail(table_model)
        cmd = keys(table_model, "down", "enter")
        note, action = commands(cmd)
        assert isinstance(note, ClearNotificationAfter)
        assert action == InstanceAction("proj-1", "i-1", "alpha", "reboot")

    def test_start_when_shutoff(self, table_model):
        self.detail(table_model, 1)
        cmd = keys(table_model, "down", "down", "enter")
        assert commands(cmd)[1] == InstanceAction("proj-1", "i-2", "beta", "start")

    def test_stop_when_active(self, table_model):
        self.detail(table_model, 0)
        cmd = keys(table_model, "down", "down", "down", "enter")
        assert commands(cmd)[1] == InstanceAction("proj-1", "i-1", "alpha", "stop")

    def test_ssh_without_ip(self, table_model):
        self.detail(table_model)
        cmd = keys(table_model, "enter")
        assert isinstance(cmd, ClearNotificationAfter)
        assert table_model.notification == "❌ No IP address available for alpha"

    def test_ssh_user_from_image_and_floating_ip(self, table_model):
        table_model.image_map = {"img-1": "Debian 12"}
        table_model.floating_ip_map = {"i-1": "141.0.0.1"}
        self.detail(table_model)
        cmd = keys(table_model, "enter")
        assert commands(cmd)[1] == RunSSH("debian", "141.0.0.1", "alpha")

    def test_action_done_refetches(self, table_model):
        cmd = send(table_model, InstanceActionDone("reboot", "alpha"))
        assert FetchProductData(ProductType.INSTANCES, "proj-1") in commands(cmd)
        assert table_model.notification == "✅ 🔄 Reboot requested for alpha"

    def test_ssh_finished_error(self, table_model):
        send(table_model, SSHFinished("alpha", error="connection failed (exit 255)"))
        assert table_model.notification == "❌ SSH to alpha failed: connection failed (exit 255)"


class TestProjects:
    PROJECTS = [
        {"project_id": "p2", "description": "Zeta"},
        {"project_id": "proj-1", "description": "Alpha"},
    ]

    def test_select_save_default_and_choose(self, table_model):
        assert keys(table_model, "p") == FetchProjects()
        send(table_model, ProjectsLoaded(self.PROJECTS))
        assert table_model.mode is ViewMode.PROJECT_SELECT
        assert [p["project_id"] for p in table_model.projects] == ["proj-1", "p2"]

        keys(table_model, "down")
        assert keys(table_model, "d") == SaveDefaultProject("p2", "Zeta")

        cmd = send(table_model, DefaultProjectSaved("p2", "Zeta"))
        assert cmd == ClearNotificationAfter(3, table_model.notification_seq)
        assert table_model.notification == "✅ Default project set: Zeta"
        assert table_model.cloud_project == "p2"
        assert table_model.cloud_project_name == "Zeta"

        assert keys(table_model, "enter") == FetchProductData(ProductType.INSTANCES, "p2")
        assert table_model.cloud_project == "p2"

    def test_cursor_starts_on_current_project(self, table_model):
        keys(table_model, "p")
        send(table_model, ProjectsLoaded(list(reversed(self.PROJECTS))))
        assert table_model.projects[table_model.selected_index]["project_id"] == "proj-1"

    def test_no_projects_is_error(self, table_model):
        keys(table_model, "p")
        send(table_model, ProjectsLoaded([]))
        assert table_model.mode is ViewMode.ERROR
        assert table_model.error_message == "No projects found"

    def test_escape_returns_to_instances(self, table_model):
        keys(table_model, "p")
        send(table_model, ProjectsLoaded(self.PROJECTS))
        assert keys(table_model, "escape") == FetchProductData(ProductType.INSTANCES, "proj-1")

    def test_saved_default_becomes_current_project(self, table_model):
        keys(table_model, "p")
        send(table_model, ProjectsLoaded(self.PROJECTS))
        send(table_model, DefaultProjectSaved("p2", "Zeta"))
        assert table_model.cloud_project == "p2"
        assert keys(table_model, "escape") == FetchProductData(ProductType.INSTANCES, "p2")

    def test_failed_save_keeps_project(self, table_model):
        send(table_model, DefaultProjectSaved("p2", "Zeta", error="read-only"))
        assert table_model.cloud_project == "proj-1"
        assert table_model.notification == "❌ Failed to save default project: read-only"

    def test_list_arriving_under_debug_view(self, table_model):
        keys(table_model, "p", "d")
        assert table_model.mode is ViewMode.DEBUG
        send(table_model, ProjectsLoaded(self.PROJECTS))
        assert table_model.mode is ViewMode.DEBUG
        keys(table_model, "escape")
        assert table_model.mode is ViewMode.PROJECT_SELECT


class TestDebugView:
    def fill(self, model, count):
        for n in range(count):
            model.debug_logger.add_entry(DebugLogEntry(method="GET", url=f"https://x/{n}", status_code=200))

    def test_open_scroll_clamped_and_close(self, table_model):
        self.fill(table_model, 10)
        table_model.debug_visible_entries = 3
        keys(table_model, "d")
        assert table_model.mode is ViewMode.DEBUG
        keys(table_model, "down")
        assert table_model.debug_scroll == 0
        keys(table_model, *(["up"] * 20))
        assert table_model.debug_scroll == 7
        keys(table_model, "down")
        assert table_model.debug_scroll == 6
        keys(table_model, "escape")
        assert table_model.mode is ViewMode.TABLE

    def test_clear_goes_through_command(self, table_model):
        self.fill(table_model, 2)
        keys(table_model, "d")
        assert keys(table_model, "c") == ClearDebugLog()
        assert len(table_model.debug_logger) == 2

    def test_d_closes(self, table_model):
        keys(table_model, "d", "d")
        assert table_model.mode is ViewMode.TABLE

    def test_load_finishing_under_debug_view(self, model):
        init(model)
        keys(model, "d")
        send(model, DataLoaded(ProductType.INSTANCES, "proj-1", ROWS))
        assert model.mode is ViewMode.DEBUG
        keys(model, "escape")
        assert model.mode is ViewMode.TABLE
        assert len(model.current_data) == 2

    def test_empty_result_under_debug_view(self, model):
        init(model)
        keys(model, "d")
        send(model, DataLoaded(ProductType.INSTANCES, "proj-1", []))
        keys(model, "escape")
        assert model.mode is ViewMode.EMPTY

    def test_error_under_debug_view(self, model):
        init(model)
        keys(model, "d")
        send(model, DataLoaded(ProductType.INSTANCES, "proj-1", error="boom"))
        assert model.mode is ViewMode.DEBUG
        keys(model, "escape")
        assert model.mode is ViewMode.ERROR
        assert model.error_message == "Failed to load instances: boom"


class TestNotifications:
    def test_only_matching_sequence_clears(self, model):
        notify(model, "first")
        notify(model, "second")
        send(model, ClearNotification(1))
        assert model.notification == "second"
        send(model, ClearNotification(2))
        assert model.notification == ""

    def test_default_duration(self, model):
        assert notify(model, "hello") == ClearNotificationAfter(5.0, 1)


def test_c_starts_wizard_on_instances(table_model):
    cmd = keys(table_model, "c")
    assert table_model.mode is ViewMode.WIZARD
    assert cmd == FetchWizardList(1, WizardStep.REGION, "proj-1", "")


def test_c_on_other_products_quits_with_cli_command(table_model):
    table_model.current_product = ProductType.NETWORKS
    assert keys(table_model, "c") == Quit("ovhcloud cloud network create --cloud-project proj-1")
    table_model.current_product = ProductType.KUBERNETES
    assert keys(table_model, "c") == Quit("ovhcloud cloud kube create --cloud-project proj-1")


def test_c_ignored_while_loading(table_model):
    table_model.current_product = ProductType.STORAGE
    table_model.mode = ViewMode.LOADING
    assert keys(table_model, "c") is None
