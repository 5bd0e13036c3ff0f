"""
Command execution.

CommandExecutor turns the Command values returned by update() into Messages:
API calls through CloudClient, timers, the ssh subprocess, local file reads
and config writes. Handlers never raise; failures become the error variant of
the Message the Command would have produced.

Error Handling:
  - Every handler is wrapped by command_safe(on_error), which logs the
    exception and returns on_error(command, exc)
  - Per-item failures inside list fetches are logged and skipped
  - Enrichment is best effort: failed lookups leave the maps partial
"""

import asyncio
import contextlib
import functools
import logging
import subprocess
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from .commands import (
    Batch, Cleanup, ClearDebugLog, ClearNotificationAfter, Command, CreateNetwork, CreateSSHKey,
    DeleteInstance, EnrichInstances, FetchProductData, FetchProjects, FetchWizardList, InstanceAction,
    ListLocalKeys, Provision, ReadPublicKey, RunSSH, SaveDefaultProject, Tick,
)
from .debug_log import DebugLogEntry, DebugLogger
from .filters import get_str, images_for_region, regions_from_images, sort_by_name
from .messages import (
    CleanupDone, ClearNotification, DataLoaded, DebugLogCleared, DefaultProjectSaved,
    InstanceActionDone, InstanceDeleted, InstancesEnriched, LocalKeysListed, Message, NetworkCreated,
    ProjectsLoaded, ProvisionStepDone, PublicKeyRead, RefreshTick, SSHFinished, SSHKeyCreated,
    WizardListLoaded,
)
from .model import ProductType, WizardStep
from .provisioning import (
    WAIT_ATTEMPTS, WAIT_INTERVAL, create_private_network, create_subnet, project_path, run_cleanup,
    run_step,
)

logger = logging.getLogger(__name__)

SSH_CONNECTION_FAILED = 255

# (path suffix, list returns ids that need a detail call)
PRODUCT_ENDPOINTS: Dict[ProductType, tuple] = {
    ProductType.INSTANCES: ("/instance", False),
    ProductType.KUBERNETES: ("/kube", True),
    ProductType.DATABASES: ("/database/service", True),
    ProductType.STORAGE: ("/volume", False),
    ProductType.NETWORKS: ("/network/private", False),
}


def command_safe(on_error: Callable[[Any, Exception], Message]) -> Callable:
    """
    Decorator for command handlers that converts failures into messages.

    Args:
        on_error: Builds the failure message from (command, exception)

    Usage:
        @command_safe(lambda cmd, e: DataLoaded(cmd.product, cmd.project_id, error=str(e)))
        async def _fetch_product_data(self, cmd): ...
    """
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(self, cmd, *args, **kwargs) -> Any:
            try:
                return await func(self, cmd, *args, **kwargs)
            except Exception as e:
                logger.error(f"Command {type(cmd).__name__} failed in {func.__name__}: {e}", exc_info=True)
                return on_error(cmd, e)
        return wrapper
    return decorator


def ssh_command(user: str, ip: str) -> List[str]:
    return [
        "ssh",
        "-o", "StrictHostKeyChecking=no",
        "-o", "UserKnownHostsFile=/dev/null",
        f"{user}@{ip}",
    ]


def _named(row: Dict[str, Any]) -> Dict[str, Any]:
    """Rows without a name (database services) show their description."""
    if not get_str(row, "name"):
        row = dict(row)
        row["name"] = get_str(row, "description") or get_str(row, "id")
    return row


class CommandExecutor:
    def __init__(
        self,
        client,
        debug_logger: Optional[DebugLogger] = None,
        config_manager=None,
        suspend: Optional[Callable[[], Any]] = None,
        ssh_dir: Optional[Path] = None,
        wait_attempts: int = WAIT_ATTEMPTS,
        wait_interval: float = WAIT_INTERVAL,
    ):
        self.client = client
        self.debug_logger = debug_logger
        self.config_manager = config_manager
        self.suspend = suspend or contextlib.nullcontext
        self.ssh_dir = Path(ssh_dir) if ssh_dir else Path.home() / ".ssh"
        self.wait_attempts = wait_attempts
        self.wait_interval = wait_interval
        self._handlers: Dict[Type[Command], Callable[[Any], Awaitable[Any]]] = {
            Tick: self._tick,
            ClearNotificationAfter: self._clear_notification_after,
            FetchProjects: self._fetch_projects,
            FetchProductData: self._fetch_product_data,
            EnrichInstances: self._enrich_instances,
            SaveDefaultProject: self._save_default_project,
            DeleteInstance: self._delete_instance,
            InstanceAction: self._instance_action,
            RunSSH: self._run_ssh,
            ClearDebugLog: self._clear_debug_log,
            FetchWizardList: self._fetch_wizard_list,
            ListLocalKeys: self._list_local_keys,
            ReadPublicKey: self._read_public_key,
            CreateSSHKey: self._create_ssh_key,
            CreateNetwork: self._create_network,
            Provision: self._provision,
            Cleanup: self._cleanup,
        }

    def handles(self, cmd: Command) -> bool:
        return type(cmd) in self._handlers

    async def execute(self, cmd: Optional[Command]) -> List[Message]:
        """Run ``cmd`` and return the messages it produced (batches run concurrently)."""
        if cmd is None:
            return []
        if isinstance(cmd, Batch):
            results = await asyncio.gather(*(self.execute(c) for c in cmd.commands))
            return [msg for msgs in results for msg in msgs]
        handler = self._handlers.get(type(cmd))
        if handler is None:
            logger.warning(f"No executor for command {type(cmd).__name__}")
            return []
        result = await handler(cmd)
        if result is None:
            return []
        if isinstance(result, list):
            return result
        return [result]

    # --- Timers -----------------------------------------------------------------

    async def _tick(self, cmd: Tick) -> Message:
        await asyncio.sleep(cmd.delay)
        return RefreshTick(cmd.for_product, cmd.generation)

    async def _clear_notification_after(self, cmd: ClearNotificationAfter) -> Message:
        await asyncio.sleep(cmd.delay)
        return ClearNotification(cmd.seq)

    # --- Browsing ---------------------------------------------------------------

    async def _get_details(self, base_path: str, ids: List[Any]) -> List[Dict[str, Any]]:
        results = await asyncio.gather(
            *(self.client.get(f"{base_path}/{item_id}") for item_id in ids),
            return_exceptions=True,
        )
        rows = []
        for item_id, result in zip(ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Skipping {base_path}/{item_id}: {result}")
            elif isinstance(result, dict):
                rows.append(result)
        return rows

    @command_safe(lambda cmd, e: ProjectsLoaded(error=str(e)))
    async def _fetch_projects(self, cmd: FetchProjects) -> Message:
        ids = await self.client.get("/v1/cloud/project") or []
        projects = await self._get_details("/v1/cloud/project", ids)
        return ProjectsLoaded(projects=projects)

    @command_safe(lambda cmd, e: DataLoaded(cmd.product, cmd.project_id, error=str(e)))
    async def _fetch_product_data(self, cmd: FetchProductData) -> Message:
        suffix, by_id = PRODUCT_ENDPOINTS[cmd.product]
        path = project_path(cmd.project_id, suffix)
        data = await self.client.get(path) or []
        if by_id:
            data = await self._get_details(path, data)
        rows = [_named(row) for row in data if isinstance(row, dict)]
        return DataLoaded(cmd.product, cmd.project_id, sort_by_name(rows))

    @command_safe(lambda cmd, e: InstancesEnriched(cmd.for_product, cmd.project_id))
    async def _enrich_instances(self, cmd: EnrichInstances) -> Message:
        lookups = [self.client.get(project_path(cmd.project_id, "/image"))]
        lookups += [
            self.client.get(project_path(cmd.project_id, f"/region/{region}/floatingip"))
            for region in cmd.regions
        ]
        results = await asyncio.gather(*lookups, return_exceptions=True)

        image_map: Dict[str, str] = {}
        images = results[0]
        if isinstance(images, Exception):
            logger.warning(f"Image lookup failed: {images}")
        else:
            for image in images or []:
                if not isinstance(image, dict):
                    continue
                image_map[get_str(image, "id")] = get_str(image, "name")

        floating_ip_map: Dict[str, str] = {}
        for region, result in zip(cmd.regions, results[1:]):
            if isinstance(result, Exception):
                logger.warning(f"Floating IP lookup failed in {region}: {result}")
                continue
            for fip in result or []:
                if not isinstance(fip, dict):
                    continue
                entity = fip.get("associatedEntity")
                if not isinstance(entity, dict):
                    continue
                instance_id = get_str(entity, "id")
                if instance_id and get_str(fip, "ip"):
                    floating_ip_map[instance_id] = get_str(fip, "ip")
        return InstancesEnriched(cmd.for_product, cmd.project_id, image_map, floating_ip_map)

    @command_safe(lambda cmd, e: DefaultProjectSaved(cmd.project_id, cmd.project_name, error=str(e)))
    async def _save_default_project(self, cmd: SaveDefaultProject) -> Message:
        if self.config_manager is None:
            raise RuntimeError("no configuration available")
        await asyncio.to_thread(self.config_manager.set_default_project, cmd.project_id)
        logger.info(f"Default project set to {cmd.project_id}")
        return DefaultProjectSaved(cmd.project_id, cmd.project_name)

    @command_safe(lambda cmd, e: InstanceDeleted(cmd.instance_id, cmd.name, error=str(e)))
    async def _delete_instance(self, cmd: DeleteInstance) -> Message:
        await self.client.delete(project_path(cmd.project_id, f"/instance/{cmd.instance_id}"))
        logger.info(f"Deleted instance {cmd.name} ({cmd.instance_id})")
        return InstanceDeleted(cmd.instance_id, cmd.name)

    @command_safe(lambda cmd, e: InstanceActionDone(cmd.action, cmd.name, error=str(e)))
    async def _instance_action(self, cmd: InstanceAction) -> Message:
        path = project_path(cmd.project_id, f"/instance/{cmd.instance_id}/{cmd.action}")
        body = {"type": "soft"} if cmd.action == "reboot" else None
        await self.client.post(path, body)
        return InstanceActionDone(cmd.action, cmd.name)

    @command_safe(lambda cmd, e: SSHFinished(cmd.name, error=str(e)))
    async def _run_ssh(self, cmd: RunSSH) -> Message:
        argv = ssh_command(cmd.user, cmd.ip)
        logger.info(f"Opening SSH session: {' '.join(argv)}")
        started = time.monotonic()
        return_code: Optional[int] = None
        error = ""
        try:
            with self.suspend():
                return_code = subprocess.call(argv)
        except OSError as e:
            error = str(e)
        if return_code == SSH_CONNECTION_FAILED:
            error = f"connection failed (exit {SSH_CONNECTION_FAILED})"
        if self.debug_logger is not None:
            self.debug_logger.add_entry(DebugLogEntry(
                method="SSH",
                url=f"{cmd.user}@{cmd.ip}",
                status_code=return_code,
                duration=time.monotonic() - started,
                error=error,
            ))
        # Any other non-zero exit is the remote session's own status.
        return SSHFinished(cmd.name, error=error)

    async def _clear_debug_log(self, cmd: ClearDebugLog) -> Message:
        if self.debug_logger is not None:
            self.debug_logger.clear()
        return DebugLogCleared()

    # --- Wizard -----------------------------------------------------------------

    async def _wizard_items(self, cmd: FetchWizardList) -> tuple:
        project = cmd.project_id
        if cmd.step in (WizardStep.REGION, WizardStep.IMAGE):
            images = await self.client.get(project_path(project, "/image")) or []
            if cmd.step is WizardStep.REGION:
                return regions_from_images(images), images
            return images_for_region(images, cmd.region), images

        if cmd.step is WizardStep.FLAVOR:
            flavors = await self.client.get(project_path(project, f"/flavor?region={cmd.region}")) or []
            return sort_by_name(f for f in flavors if f.get("available", True)), []

        if cmd.step is WizardStep.SSH_KEY:
            keys = await self.client.get(project_path(project, f"/sshkey?region={cmd.region}")) or []
            return sort_by_name(keys), []

        if cmd.step is WizardStep.NETWORK:
            networks = await self.client.get(project_path(project, "/network/private")) or []
            in_region = [
                n for n in networks
                if any(get_str(r, "region") == cmd.region for r in n.get("regions") or [])
            ]
            for network in in_region:
                network["subnets"] = await self._region_subnets(project, get_str(network, "id"), cmd.region)
            return sort_by_name(in_region), []

        if cmd.step is WizardStep.FLOATING_IP:
            fips = await self.client.get(project_path(project, f"/region/{cmd.region}/floatingip")) or []
            free = [f for f in fips if not f.get("associatedEntity")]
            return sorted(free, key=lambda f: get_str(f, "ip")), []

        return [], []

    async def _region_subnets(self, project: str, network_id: str, region: str) -> List[Dict[str, Any]]:
        try:
            subnets = await self.client.get(project_path(project, f"/network/private/{network_id}/subnet")) or []
        except Exception as e:
            logger.warning(f"Subnet lookup for {network_id} failed: {e}")
            return []
        matching = []
        for subnet in subnets:
            pools = subnet.get("ipPools") or []
            if not pools or any(get_str(pool, "region") == region for pool in pools):
                matching.append(subnet)
        return matching

    @command_safe(lambda cmd, e: WizardListLoaded(cmd.run_id, cmd.step, error=str(e)))
    async def _fetch_wizard_list(self, cmd: FetchWizardList) -> Message:
        items, extra = await self._wizard_items(cmd)
        return WizardListLoaded(cmd.run_id, cmd.step, items=list(items), extra=list(extra))

    @command_safe(lambda cmd, e: LocalKeysListed(cmd.run_id))
    async def _list_local_keys(self, cmd: ListLocalKeys) -> Message:
        if not self.ssh_dir.is_dir():
            return LocalKeysListed(cmd.run_id)
        paths = sorted(str(p) for p in self.ssh_dir.glob("*.pub") if p.is_file())
        return LocalKeysListed(cmd.run_id, paths)

    @command_safe(lambda cmd, e: PublicKeyRead(cmd.run_id, cmd.path, error=str(e)))
    async def _read_public_key(self, cmd: ReadPublicKey) -> Message:
        content = await asyncio.to_thread(Path(cmd.path).read_text)
        return PublicKeyRead(cmd.run_id, cmd.path, content.strip())

    @command_safe(lambda cmd, e: SSHKeyCreated(cmd.run_id, error=str(e)))
    async def _create_ssh_key(self, cmd: CreateSSHKey) -> Message:
        body = {"name": cmd.name, "publicKey": cmd.public_key}
        if cmd.region:
            body["region"] = cmd.region
        key = await self.client.post(project_path(cmd.project_id, "/sshkey"), body)
        if not isinstance(key, dict):
            key = {}
        key.setdefault("name", cmd.name)
        return SSHKeyCreated(cmd.run_id, key)

    @command_safe(lambda cmd, e: NetworkCreated(cmd.run_id, error=str(e)))
    async def _create_network(self, cmd: CreateNetwork) -> Message:
        network = await create_private_network(self.client, cmd.project_id, cmd.region, cmd.request)
        network_id = get_str(network, "id") or get_str(network, "resourceId")
        network = dict(network, id=network_id)
        try:
            subnet = await create_subnet(self.client, cmd.project_id, network_id, cmd.region, cmd.request)
        except Exception as e:
            logger.warning(f"Network {network_id} created but subnet failed: {e}")
            return NetworkCreated(cmd.run_id, network, error=str(e))
        return NetworkCreated(cmd.run_id, network, subnet_id=get_str(subnet, "id") or get_str(subnet, "resourceId"))

    @command_safe(lambda cmd, e: ProvisionStepDone(cmd.run_id, cmd.step, error=str(e)))
    async def _provision(self, cmd: Provision) -> Message:
        outcome = await run_step(
            self.client, cmd.step, cmd.context,
            wait_attempts=self.wait_attempts, wait_interval=self.wait_interval,
        )
        return ProvisionStepDone(
            cmd.run_id, cmd.step, created=tuple(outcome.created), values=dict(outcome.values)
        )

    @command_safe(lambda cmd, e: CleanupDone(cmd.run_id, errors=[str(e)]))
    async def _cleanup(self, cmd: Cleanup) -> Message:
        deleted, errors = await run_cleanup(self.client, cmd.project_id, list(cmd.entries))
        return CleanupDone(cmd.run_id, deleted, errors)
