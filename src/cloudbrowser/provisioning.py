"""
Instance provisioning as a compensating transaction.

The Confirm step of the wizard runs an ordered list of saga steps. Each step
creates at most one resource; update() appends whatever a step created to the
wizard's ledger before issuing the next step, so after a failure the ledger
names exactly what exists. Every resource kind has a matching delete path,
and cleanup walks the ledger backwards attempting every deletion.

Saga steps (in order, each only when it applies):
  NETWORK             requested private network not created yet
  SUBNET              requested private network without its subnet
  GATEWAY             new floating IP requested; created if the subnet has none
  INSTANCE            always
  WAIT_FOR_IP         floating IP requested; polls for the private address
  ATTACH_FLOATING_IP  floating IP requested; a new one lands on the ledger
"""

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .commands import ProvisionContext
from .filters import first_ip
from .model import CREATE_NEW, LedgerEntry, NetworkRequest, ProvisionStep, ResourceKind, WizardData

logger = logging.getLogger(__name__)

WAIT_ATTEMPTS = 12
WAIT_INTERVAL = 5.0


class ProvisioningError(Exception):
    """A saga step could not complete for a reason other than an API error."""


@dataclass
class StepOutcome:
    created: List[Tuple[ResourceKind, str]] = field(default_factory=list)
    values: Dict[str, str] = field(default_factory=dict)


def project_path(project_id: str, suffix: str = "") -> str:
    return f"/v1/cloud/project/{project_id}{suffix}"


def subnet_range(cidr: str) -> Tuple[str, str]:
    """First and last allocatable addresses, leaving .1 for the gateway."""
    network = ipaddress.ip_network(cidr, strict=False)
    first = network.network_address + 2
    last = network.broadcast_address - 1
    if first > last:
        raise ValueError(f"CIDR {cidr} is too small")
    return str(first), str(last)


def _resource_id(response: Any) -> str:
    if isinstance(response, dict):
        return str(response.get("resourceId") or response.get("id") or "")
    return ""


# --- Create steps ----------------------------------------------------------

async def create_private_network(client, project_id: str, region: str, request: NetworkRequest) -> Dict[str, Any]:
    network = await client.post(
        project_path(project_id, "/network/private"),
        {"name": request.name, "vlanId": request.vlan_id, "regions": [region]},
    )
    if not _resource_id(network):
        raise ProvisioningError("Network creation returned no id")
    return network


async def create_subnet(client, project_id: str, network_id: str, region: str, request: NetworkRequest) -> Dict[str, Any]:
    start, end = subnet_range(request.cidr)
    subnet = await client.post(
        project_path(project_id, f"/network/private/{network_id}/subnet"),
        {
            "region": region,
            "network": request.cidr,
            "dhcp": request.dhcp,
            "noGateway": False,
            "start": start,
            "end": end,
        },
    )
    if not _resource_id(subnet):
        raise ProvisioningError("Subnet creation returned no id")
    return subnet


async def _step_network(client, ctx: ProvisionContext) -> StepOutcome:
    if ctx.network_request is None:
        raise ProvisioningError("No private network requested")
    network = await create_private_network(client, ctx.project_id, ctx.region, ctx.network_request)
    network_id = _resource_id(network)
    return StepOutcome(
        created=[(ResourceKind.NETWORK, network_id)],
        values={"network_id": network_id, "network_name": ctx.network_request.name},
    )


async def _step_subnet(client, ctx: ProvisionContext) -> StepOutcome:
    if ctx.network_request is None or not ctx.network_id:
        raise ProvisioningError("A private network is required before creating its subnet")
    subnet = await create_subnet(client, ctx.project_id, ctx.network_id, ctx.region, ctx.network_request)
    subnet_id = _resource_id(subnet)
    return StepOutcome(created=[(ResourceKind.SUBNET, subnet_id)], values={"subnet_id": subnet_id})


async def _step_gateway(client, ctx: ProvisionContext) -> StepOutcome:
    if not ctx.network_id or not ctx.subnet_id:
        raise ProvisioningError("A floating IP needs a private network with a subnet")
    existing = await client.get(
        project_path(ctx.project_id, f"/region/{ctx.region}/gateway?subnetId={ctx.subnet_id}")
    )
    if existing:
        logger.debug(f"Subnet {ctx.subnet_id} already has a gateway")
        return StepOutcome()
    gateway = await client.post(
        project_path(
            ctx.project_id,
            f"/region/{ctx.region}/network/{ctx.network_id}/subnet/{ctx.subnet_id}/gateway",
        ),
        {"model": "s", "name": f"gw-{ctx.instance_name}"},
    )
    gateway_id = _resource_id(gateway)
    return StepOutcome(created=[(ResourceKind.GATEWAY, gateway_id)], values={"gateway_id": gateway_id})


def instance_body(ctx: ProvisionContext) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "flavorId": ctx.flavor_id,
        "imageId": ctx.image_id,
        "name": ctx.instance_name,
        "region": ctx.region,
    }
    if ctx.ssh_key_id:
        body["sshKeyId"] = ctx.ssh_key_id
    if ctx.network_id:
        body["networks"] = [{"networkId": ctx.network_id}]
    return body


async def _step_instance(client, ctx: ProvisionContext) -> StepOutcome:
    instance = await client.post(project_path(ctx.project_id, "/instance"), instance_body(ctx))
    instance_id = _resource_id(instance)
    if not instance_id:
        raise ProvisioningError("Instance creation returned no id")
    return StepOutcome(created=[(ResourceKind.INSTANCE, instance_id)], values={"instance_id": instance_id})


async def _step_wait_for_ip(client, ctx: ProvisionContext,
                            attempts: int = WAIT_ATTEMPTS, interval: float = WAIT_INTERVAL) -> StepOutcome:
    for attempt in range(attempts):
        instance = await client.get(project_path(ctx.project_id, f"/instance/{ctx.instance_id}"))
        private_ip = first_ip(instance or {}, "private")
        if private_ip:
            return StepOutcome(values={"private_ip": private_ip})
        logger.debug(f"Instance {ctx.instance_id} has no private IP yet (attempt {attempt + 1}/{attempts})")
        if attempt < attempts - 1:
            await asyncio.sleep(interval)
    raise ProvisioningError("Timed out waiting for the instance private IP")


async def _step_attach_floating_ip(client, ctx: ProvisionContext) -> StepOutcome:
    if not ctx.network_id:
        raise ProvisioningError("A floating IP requires a private network")
    if not ctx.private_ip:
        raise ProvisioningError("Instance has no private IP to attach the floating IP to")
    base = project_path(ctx.project_id, f"/region/{ctx.region}/instance/{ctx.instance_id}")
    if ctx.floating_ip == CREATE_NEW:
        response = await client.post(f"{base}/floatingIp", {"ip": ctx.private_ip})
        floating_ip_id = _resource_id(response)
        return StepOutcome(
            created=[(ResourceKind.FLOATING_IP, floating_ip_id)],
            values={"floating_ip_id": floating_ip_id},
        )
    await client.post(f"{base}/associateFloatingIp", {"floatingIpId": ctx.floating_ip, "ip": ctx.private_ip})
    return StepOutcome(values={"floating_ip_id": ctx.floating_ip})


@dataclass(frozen=True)
class SagaStep:
    step: ProvisionStep
    applies: Callable[[WizardData], bool]
    run: Callable[..., Awaitable[StepOutcome]]


SAGA: Tuple[SagaStep, ...] = (
    SagaStep(ProvisionStep.NETWORK,
             lambda w: w.network_request is not None and not w.selected_network,
             _step_network),
    SagaStep(ProvisionStep.SUBNET,
             lambda w: w.network_request is not None and not w.selected_subnet,
             _step_subnet),
    SagaStep(ProvisionStep.GATEWAY, lambda w: w.selected_floating_ip == CREATE_NEW, _step_gateway),
    SagaStep(ProvisionStep.INSTANCE, lambda w: True, _step_instance),
    SagaStep(ProvisionStep.WAIT_FOR_IP, lambda w: w.wants_floating_ip, _step_wait_for_ip),
    SagaStep(ProvisionStep.ATTACH_FLOATING_IP, lambda w: w.wants_floating_ip, _step_attach_floating_ip),
)

_SAGA_BY_STEP = {saga_step.step: saga_step for saga_step in SAGA}


def plan_provisioning(wizard: WizardData) -> List[ProvisionStep]:
    return [saga_step.step for saga_step in SAGA if saga_step.applies(wizard)]


def validate_plan(wizard: WizardData) -> Optional[str]:
    """Cross-field checks run before anything is created."""
    if not (wizard.selected_region and wizard.selected_flavor and wizard.selected_image):
        return "Region, flavor and image must be selected"
    if not wizard.instance_name:
        return "Instance name is required"
    if wizard.wants_floating_ip and not (wizard.selected_network or wizard.network_request):
        return "A floating IP requires a private network"
    if not wizard.use_public_network and not (wizard.selected_network or wizard.network_request):
        return "Select a private network or enable the public network"
    return None


def build_context(wizard: WizardData, project_id: str) -> ProvisionContext:
    return ProvisionContext(
        project_id=project_id,
        region=wizard.selected_region,
        instance_name=wizard.instance_name,
        flavor_id=wizard.selected_flavor,
        image_id=wizard.selected_image,
        ssh_key_id=wizard.selected_ssh_key,
        network_id=wizard.selected_network,
        subnet_id=wizard.selected_subnet,
        network_request=wizard.network_request,
        floating_ip=wizard.selected_floating_ip if wizard.wants_floating_ip else "",
        instance_id=wizard.ledger.get(ResourceKind.INSTANCE),
        private_ip=wizard.created_instance_private_ip,
    )


async def run_step(client, step: ProvisionStep, ctx: ProvisionContext,
                   wait_attempts: int = WAIT_ATTEMPTS, wait_interval: float = WAIT_INTERVAL) -> StepOutcome:
    if step is ProvisionStep.WAIT_FOR_IP:
        return await _step_wait_for_ip(client, ctx, wait_attempts, wait_interval)
    return await _SAGA_BY_STEP[step].run(client, ctx)


# --- Compensation ----------------------------------------------------------

DELETE_PATHS: Dict[ResourceKind, Callable[[str, LedgerEntry], str]] = {
    ResourceKind.FLOATING_IP: lambda p, e: project_path(p, f"/region/{e.region}/floatingip/{e.resource_id}"),
    ResourceKind.GATEWAY: lambda p, e: project_path(p, f"/region/{e.region}/gateway/{e.resource_id}"),
    ResourceKind.INSTANCE: lambda p, e: project_path(p, f"/instance/{e.resource_id}"),
    ResourceKind.SUBNET: lambda p, e: project_path(p, f"/network/private/{e.parent_id}/subnet/{e.resource_id}"),
    ResourceKind.NETWORK: lambda p, e: project_path(p, f"/network/private/{e.resource_id}"),
    ResourceKind.SSH_KEY: lambda p, e: project_path(p, f"/sshkey/{e.resource_id}"),
}


async def run_cleanup(client, project_id: str, entries: List[LedgerEntry]) -> Tuple[List[str], List[str]]:
    """Delete ledger entries newest first, attempting every one."""
    deleted: List[str] = []
    errors: List[str] = []
    for entry in reversed(entries):
        label = entry.kind.label
        try:
            await client.delete(DELETE_PATHS[entry.kind](project_id, entry))
        except Exception as e:
            logger.warning(f"Cleanup of {label} {entry.resource_id} failed: {e}")
            errors.append(f"{label}: {e}")
        else:
            logger.info(f"Cleaned up {label} {entry.resource_id}")
            deleted.append(label)
    return deleted, errors


def cleanup_summary(deleted: List[str], errors: List[str]) -> str:
    if errors:
        summary = "⚠️ Cleanup partial - errors: " + "; ".join(errors)
        if deleted:
            summary += " (deleted: " + ", ".join(deleted) + ")"
        return summary
    if deleted:
        return "🗑️ Cleaned up: " + ", ".join(deleted)
    return "Nothing to clean up"


RESOURCES_KEPT = "⚠️ Resources kept. You may need to clean them up manually."
