"""Documents rendered from the bridge identity.

Two documents are served to discovery clients:

- the **UPnP device description** (``/description.xml``), the target
  of the SSDP ``LOCATION`` header;
- the **configuration document** (``/api/{user}/config``), the first
  thing a Hue client reads after discovery.

Both are pure functions of :class:`~huebridge._identity.BridgeIdentity`
plus a few fixed values.  Placeholders are ``string.Template``
``$names``; a missing value raises :class:`KeyError` from
``substitute()`` and a leftover marker raises :class:`RenderError`.
Either one is a bug, not a runtime condition.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from string import Template
from typing import Any

from huebridge._errors import RenderError
from huebridge._identity import BridgeIdentity

SOFTWARE_VERSION = "81012917"
API_VERSION = "1.3.0"
WHITELIST_CLIENT_NAME = "clientname#devicename"

DESCRIPTION_TEMPLATE = Template(
    """<?xml version="1.0" ?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
<specVersion><major>1</major><minor>0</minor></specVersion>
<URLBase>$base_url</URLBase>
<device>
	<deviceType>urn:schemas-upnp-org:device:Basic:1</deviceType>
	<friendlyName>$friendly_name</friendlyName>
	<manufacturer>Royal Philips Electronics</manufacturer>
	<manufacturerURL>http://www.philips.com</manufacturerURL>
	<modelDescription>Philips hue Personal Wireless Lighting</modelDescription>
	<modelName>Philips hue bridge 2012</modelName>
	<modelNumber>929000226503</modelNumber>
	<modelURL>http://www.meethue.com</modelURL>
	<serialNumber>$serial_number</serialNumber>
	<UDN>$udn</UDN>
	<presentationURL>index.html</presentationURL>
	<iconList>
	<icon>
		<mimetype>image/png</mimetype>
		<height>48</height>
		<width>48</width>
		<depth>24</depth>
		<url>hue_logo_0.png</url>
	</icon>
	<icon>
		<mimetype>image/png</mimetype>
		<height>120</height>
		<width>120</width>
		<depth>24</depth>
		<url>hue_logo_3.png</url>
	</icon>
	</iconList>
</device>
</root>
""",
)

UDN_PREFIX = "uuid:2f402f80-da50-11e1-9b23-"


def _check_resolved(rendered: str, template: Template) -> str:
    """Raise :class:`RenderError` if any ``$name`` survived substitution."""
    leftovers = [
        name for name in template.get_identifiers() if f"${name}" in rendered
    ]
    if leftovers:
        msg = f"Unresolved placeholders in rendered document: {leftovers}"
        raise RenderError(msg)
    return rendered


def description_values(identity: BridgeIdentity, port: int = 80) -> dict[str, str]:
    """Placeholder values for :data:`DESCRIPTION_TEMPLATE`."""
    return {
        "base_url": f"http://{identity.local_address}:{port}/",
        "friendly_name": f"Philips hue ({identity.local_address})",
        "serial_number": identity.compact_address,
        "udn": f"{UDN_PREFIX}{identity.compact_address}",
    }


def render_description(identity: BridgeIdentity, port: int = 80) -> str:
    """Render the UPnP device-description XML document.

    Args:
        identity: The resolved bridge identity.
        port: HTTP port embedded in ``URLBase``.
    """
    rendered = DESCRIPTION_TEMPLATE.substitute(description_values(identity, port))
    return _check_resolved(rendered, DESCRIPTION_TEMPLATE)


def build_config(
    identity: BridgeIdentity,
    *,
    name: str,
    api_username: str,
    clock: Callable[[], datetime] | None = None,
) -> dict[str, Any]:
    """Build the bridge configuration document.

    The whitelist always holds exactly one entry keyed by
    *api_username*: every client is treated as paired.

    Args:
        identity: The resolved bridge identity.
        name: Bridge name reported to clients.
        api_username: Username handed out by the pairing stub.
        clock: Optional callable returning a :class:`~datetime.datetime`
            for the ``UTC`` field.  Defaults to ``datetime.now(UTC)``.
    """
    now = clock() if clock is not None else datetime.now(UTC)
    return {
        "name": name,
        "bridgeid": identity.short_id,
        "portalservices": False,
        "ipaddress": identity.local_address,
        "gateway": "192.168.1.1",
        "netmask": "255.255.255.0",
        "proxyaddress": "",
        "proxyport": 0,
        "mac": identity.compact_address,
        "swversion": SOFTWARE_VERSION,
        "linkbutton": False,
        "swupdate": {
            "text": "",
            "notify": False,
            "updatestate": 0,
            "url": "",
        },
        "apiversion": API_VERSION,
        "dhcp": True,
        "whitelist": {
            api_username: {"name": WHITELIST_CLIENT_NAME},
        },
        "UTC": now.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S"),
    }


def dumps_compact(data: object) -> str:
    """Serialise *data* to JSON without whitespace between tokens."""
    return json.dumps(data, separators=(",", ":"))


def render_config(
    identity: BridgeIdentity,
    *,
    name: str,
    api_username: str,
    clock: Callable[[], datetime] | None = None,
) -> str:
    """Render :func:`build_config` as compact JSON."""
    return dumps_compact(
        build_config(identity, name=name, api_username=api_username, clock=clock),
    )
