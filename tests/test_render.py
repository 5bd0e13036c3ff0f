from cloudbrowser.debug_log import DebugLogEntry
from cloudbrowser.model import (
    CREATE_NEW, NetworkRequest, ProductType, ProvisionStep, ResourceKind, ViewMode, WizardData, WizardStep,
)
from cloudbrowser.render import Column, list_height, render, render_table


def test_column_truncates_with_ellipsis():
    col = Column("Name", 5, lambda model, row: "")
    assert col.fit("abc") == "abc  "
    assert col.fit("abcdefgh") == "abcd…"


def test_header_marks_current_product(table_model):
    header = render(table_model).header
    assert "Project: My project (proj-1)" in header
    assert "[Instances]" in header
    assert " Kubernetes " in header


def test_instance_table(table_model):
    table_model.image_map = {"img-1": "Ubuntu 22.04"}
    table_model.floating_ip_map = {"i-1": "51.0.0.1"}
    body = render(table_model).body
    lines = body.splitlines()
    assert lines[0] == "Instances (3)"
    assert "IP Address" in lines[2]
    assert lines[4].startswith("> alpha")
    assert "51.0.0.1 (floating)" in lines[4]
    assert "Ubuntu 22.04" in lines[4]
    assert "img-2" in lines[5]


def test_filter_shows_in_status_and_empty_match(table_model):
    table_model.filter_mode = True
    table_model.filter_input = "zzz"
    frame = render(table_model)
    assert frame.status == "Filter: zzz▌"
    assert "(no match)" in frame.body
    assert frame.help.startswith("type to filter")


def test_long_table_scrolls_with_position(model):
    model.mode = ViewMode.TABLE
    model.current_product = ProductType.STORAGE
    model.current_data = [{"id": str(i), "name": f"vol-{i:02d}", "size": 10} for i in range(40)]
    model.selected_index = 30
    body = render_table(model, model.current_data, [Column("Name", 10, lambda m, r: r["name"])])
    lines = body.splitlines()
    assert len(lines) == 2 + list_height(model) + 1
    assert "> vol-30" in body
    assert lines[-1] == "  [31/40]"


def test_volume_size_and_network_regions(model):
    model.mode = ViewMode.TABLE
    model.current_product = ProductType.STORAGE
    model.current_data = [{"id": "v", "name": "data", "size": 50}]
    assert "50 GB" in render(model).body
    model.current_product = ProductType.NETWORKS
    model.current_data = [{"id": "n", "name": "priv", "vlanId": 7, "regions": [{"region": "GRA11"}, {"region": "SBG5"}]}]
    assert "GRA11, SBG5" in render(model).body


def test_loading_error_empty(model):
    model.mode = ViewMode.LOADING
    assert render(model).body == "Loading instances..."
    model.mode = ViewMode.ERROR
    model.error_message = "Failed to load instances: boom"
    assert render(model).body.startswith("❌ Failed to load instances: boom")
    model.mode = ViewMode.EMPTY
    model.current_product = ProductType.KUBERNETES
    assert render(model).body == "No kubernetes found in this project."


def test_project_select(model):
    model.mode = ViewMode.PROJECT_SELECT
    model.current_product = ProductType.PROJECTS
    model.projects = [{"project_id": "proj-1", "description": "Prod", "status": "ok"}]
    body = render(model).body
    assert body.startswith("Select a cloud project")
    assert "proj-1" in body and "Prod" in body


def test_detail_lists_fields_and_actions(table_model):
    table_model.mode = ViewMode.DETAIL
    table_model.detail_data = table_model.current_data[0]
    table_model.image_map = {"img-1": "Ubuntu 22.04"}
    table_model.detail_action_index = 1
    body = render(table_model).body
    assert body.startswith("Instances / alpha")
    assert "Ubuntu 22.04" in body
    assert "> Reboot" in body
    assert "  SSH" in body


def test_delete_confirm(table_model):
    table_model.mode = ViewMode.DELETE_CONFIRM
    table_model.delete_target = table_model.current_data[1]
    table_model.delete_input = "be"
    table_model.delete_error = "Name does not match"
    body = render(table_model).body
    assert "Delete instance beta?" in body
    assert "> be▌" in body
    assert "❌ Name does not match" in body


def test_debug_view(model):
    model.mode = ViewMode.DEBUG
    assert "(no requests recorded yet)" in render(model).body
    for i in range(20):
        model.debug_logger.add_entry(DebugLogEntry("GET", f"https://x/{i}", status_code=200))
    model.debug_visible_entries = 5
    body = render(model).body
    assert body.startswith("Debug log (10 entries)")
    assert "Showing 6-10 of 10" in body
    assert "https://x/19" in body


def test_debug_view_scrolls_back_to_oldest(model):
    model.mode = ViewMode.DEBUG
    for i in range(20):
        model.debug_logger.add_entry(DebugLogEntry("GET", f"https://x/{i}", status_code=200))
    model.debug_visible_entries = 5
    model.debug_scroll = 99
    body = render(model).body
    assert "Showing 1-5 of 10" in body
    assert "https://x/10" in body
    assert "https://x/19" not in body


def wizard_model(model, **fields):
    model.mode = ViewMode.WIZARD
    model.wizard = WizardData(run_id=1, selected_region="GRA11", **fields)
    return model


class TestWizard:
    def test_list_step(self, model):
        wizard_model(model, step=WizardStep.FLAVOR, flavors=[{"id": "f1", "name": "b2-7", "vcpus": 2, "ram": 7000, "disk": 50}])
        frame = render(model)
        assert frame.body.startswith("Create instance - step 2/8: Flavor")
        assert "> b2-7" in frame.body and "2 vCPU" in frame.body
        assert frame.help.startswith("↑/↓ move")

    def test_loading_and_error(self, model):
        wizard_model(model, step=WizardStep.REGION, loading=True)
        assert "Loading..." in render(model).body
        model.wizard.loading = False
        model.wizard.error = "Failed to load regions: boom"
        assert "❌ Failed to load regions: boom" in render(model).body

    def test_network_step_toggle(self, model):
        wizard_model(
            model, step=WizardStep.NETWORK, use_public_network=False,
            network_request=NetworkRequest("priv", 5),
        )
        body = render(model).body
        assert "> [ ] Public network" in body
        assert "new network: priv (10.0.0.0/24)" in body
        assert "+ Create new private network" in body

    def test_ssh_form(self, model):
        wizard_model(
            model, step=WizardStep.SSH_KEY, creating_ssh_key=True, new_ssh_key_name="lap",
            local_pub_keys=["/home/me/.ssh/id_ed25519.pub"],
        )
        frame = render(model)
        assert "> Name: lap▌" in frame.body
        assert "● /home/me/.ssh/id_ed25519.pub" in frame.body
        assert frame.help.startswith("tab next field")

    def test_network_form(self, model):
        wizard_model(
            model, step=WizardStep.NETWORK, creating_network=True, network_form_field=3,
            new_network_name="priv", new_network_vlan="42", new_network_dhcp=False,
        )
        body = render(model).body
        assert "New private network in GRA11" in body
        assert "> DHCP:     [ ]" in body

    def test_confirm_summary(self, model):
        wizard_model(
            model, step=WizardStep.CONFIRM, selected_flavor_name="b2-7", selected_image_name="Debian 12",
            use_public_network=False, selected_network_name="backend", selected_floating_ip=CREATE_NEW,
            instance_name="web",
        )
        body = render(model).body
        assert "Network:     backend" in body
        assert "Floating IP: new" in body
        assert "[ Create ]" in body

    def test_provisioning_progress(self, model):
        wizard_model(
            model, step=WizardStep.CONFIRM, instance_name="web", provisioning=True,
            provision_plan=[ProvisionStep.INSTANCE, ProvisionStep.WAIT_FOR_IP], provision_position=1,
        )
        frame = render(model)
        assert "[✓] instance" in frame.body
        assert "[…] wait for ip" in frame.body
        assert frame.help == "creating, please wait"

    def test_cleanup_prompt(self, model):
        wizard_model(model, step=WizardStep.CONFIRM, instance_name="web", cleanup_pending=True,
                     cleanup_error="Instance failed: quota")
        model.wizard.ledger.record(ResourceKind.NETWORK, "net-9", "GRA11")
        body = render(model).body
        assert "- Network: net-9" in body
        assert "[ Delete all ]" in body
        assert "❌ Instance failed: quota" in body
