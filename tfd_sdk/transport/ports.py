from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from serial.tools import list_ports

from ..errors import TransportError
from ..models import PortInfo

logger = logging.getLogger(__name__)


def _hex_id(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return f"{value:04x}"


def _port_to_info(port) -> PortInfo:
    """Convert pyserial's ListPortInfo to PortInfo."""
    description = port.description if port.description and port.description != "n/a" else None
    return PortInfo(
        path=port.device,
        manufacturer=port.manufacturer,
        product_id=_hex_id(port.pid),
        vendor_id=_hex_id(port.vid),
        serial_number=port.serial_number,
        friendly_name=description,
    )


def list_serial_ports() -> List[PortInfo]:
    """Enumerate serial ports visible to pyserial.

    Raises:
        TransportError: If the OS enumeration fails
    """
    try:
        return [_port_to_info(port) for port in list_ports.comports()]
    except Exception as e:
        raise TransportError(f"Failed to list serial ports: {e}") from e


def compatible_ports(ports: Iterable[PortInfo]) -> List[PortInfo]:
    """Keep only ports that expose a USB product id."""
    return [port for port in ports if port.product_id is not None]


def choose_port(
    candidates: List[PortInfo],
    preferred_device_id: Optional[str],
    *,
    fallback_to_first: bool = False,
) -> Optional[PortInfo]:
    """
    Pick the port to auto-connect to.

    Behaviour:
        - a candidate whose device_id matches the remembered one -> it
        - otherwise, with fallback_to_first -> the first candidate
        - otherwise -> None (leave the choice to the user)
    """
    if preferred_device_id:
        for port in candidates:
            if port.device_id == preferred_device_id:
                return port
        logger.info(f"Remembered device {preferred_device_id} not present")

    if fallback_to_first and candidates:
        return candidates[0]

    return None


def find_port(ports: Iterable[PortInfo], path: str) -> Optional[PortInfo]:
    for port in ports:
        if port.path == path:
            return port
    return None
