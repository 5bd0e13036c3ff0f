"""Text filters for cached lists and small helpers over API rows."""

from typing import Any, Dict, Iterable, List, Optional

Row = Dict[str, Any]


def get_str(row: Optional[Row], key: str) -> str:
    if not row:
        return ""
    value = row.get(key)
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def sort_by_name(rows: Iterable[Row]) -> List[Row]:
    """Stable name ordering so re-renders never reshuffle rows."""
    return sorted(rows, key=lambda r: (get_str(r, "name").lower(), get_str(r, "id")))


def _matches(row: Row, needle: str, keys: Iterable[str]) -> bool:
    return any(needle in get_str(row, key).lower() for key in keys)


def filter_rows(rows: List[Row], text: str, keys: Iterable[str] = ("name",)) -> List[Row]:
    """Case-insensitive substring filter; returns the rows untouched when text is empty."""
    if not text:
        return list(rows)
    needle = text.lower()
    keys = tuple(keys)
    return [row for row in rows if _matches(row, needle, keys)]


def filter_projects(rows: List[Row], text: str) -> List[Row]:
    return filter_rows(rows, text, ("description", "project_id", "projectId"))


def filter_regions(rows: List[Row], text: str) -> List[Row]:
    return filter_rows(rows, text, ("name", "datacenterLocation", "continentCode"))


def filter_flavors(rows: List[Row], text: str) -> List[Row]:
    return filter_rows(rows, text, ("name", "type"))


def filter_images(rows: List[Row], text: str) -> List[Row]:
    return filter_rows(rows, text, ("name",))


def filter_ssh_keys(rows: List[Row], text: str) -> List[Row]:
    return filter_rows(rows, text, ("name",))


def filter_networks(rows: List[Row], text: str) -> List[Row]:
    return filter_rows(rows, text, ("name",))


def filter_floating_ips(rows: List[Row], text: str) -> List[Row]:
    return filter_rows(rows, text, ("name", "ip"))


def project_label(project: Row) -> str:
    return get_str(project, "description") or get_str(project, "project_id") or get_str(project, "projectId")


def project_id(project: Row) -> str:
    return get_str(project, "project_id") or get_str(project, "projectId") or get_str(project, "id")


def regions_from_images(images: List[Row]) -> List[Row]:
    """Unique regions offering at least one image, sorted by name."""
    names = {get_str(image, "region") for image in images}
    names.discard("")
    return [{"name": name} for name in sorted(names)]


def images_for_region(images: List[Row], region: str) -> List[Row]:
    return sort_by_name(
        image for image in images
        if get_str(image, "region") == region
        and get_str(image, "visibility") == "public"
        and get_str(image, "status") == "active"
    )


def first_ip(instance: Row, kind: Optional[str] = None, version: Optional[int] = None) -> str:
    for address in instance.get("ipAddresses") or []:
        if not isinstance(address, dict):
            continue
        if kind and address.get("type") != kind:
            continue
        if version and address.get("version") != version:
            continue
        ip = address.get("ip")
        if isinstance(ip, str) and ip:
            return ip
    return ""


def instance_ip(instance: Row, floating_ip_map: Dict[str, str]) -> str:
    """Address to reach an instance: floating IP, public IPv4, then any IP."""
    floating = floating_ip_map.get(get_str(instance, "id"), "")
    return floating or first_ip(instance, "public", 4) or first_ip(instance)


SSH_USERS = (
    ("debian", "debian"),
    ("centos", "centos"),
    ("fedora", "fedora"),
    ("arch", "arch"),
    ("rocky", "rocky"),
    ("almalinux", "almalinux"),
)


def ssh_user_for_image(image_name: str) -> str:
    lowered = image_name.lower()
    for marker, user in SSH_USERS:
        if marker in lowered:
            return user
    return "ubuntu"
