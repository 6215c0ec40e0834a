"""Messages the poller receives and sends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class Device:
    """A provisioned device and the credentials to reach it over SSH."""

    object_id: int
    ip: str
    is_provisioned: bool = False
    username: str = ""
    password: str = ""
    port: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Device":
        return cls(
            object_id=int(data.get("object_id", 0)),
            ip=str(data.get("ip", "")),
            # The provisioning flag travels under its field name, not a snake-case key.
            is_provisioned=bool(data.get("IsProvisioned", False)),
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            port=int(data.get("port", 0)),
        )

    def to_dict(self) -> dict:
        return {
            "object_id": self.object_id,
            "ip": self.ip,
            "IsProvisioned": self.is_provisioned,
            "username": self.username,
            "password": self.password,
            "port": self.port,
        }


@dataclass
class Event:
    """One polled value of a counter for a device."""

    object_id: int
    counter_id: int
    timestamp: int
    value: Any = None

    def to_dict(self) -> dict:
        return {
            "objectId": self.object_id,
            "counterId": self.counter_id,
            "timestamp": self.timestamp,
            "value": self.value,
        }