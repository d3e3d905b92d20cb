"""Request fingerprinting: user agent and client IP."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from user_agents import parse as parse_user_agent


@dataclass(frozen=True)
class DeviceInfo:
    device_name: str
    device_type: str
    browser: str | None
    os: str | None


def parse_device(user_agent: str | None) -> DeviceInfo:
    """Describe the device behind a User-Agent header.

    ``device_type`` is one of ``ios``, ``android``, ``desktop`` or ``web``.
    """
    if not user_agent:
        return DeviceInfo(device_name="Unknown device", device_type="web", browser=None, os=None)

    ua = parse_user_agent(user_agent)
    browser = ua.browser.family if ua.browser.family != "Other" else None
    os_name = ua.os.family if ua.os.family != "Other" else None

    if os_name == "iOS" or ua.device.family in ("iPhone", "iPad"):
        device_type = "ios"
    elif os_name == "Android":
        device_type = "android"
    elif "Electron" in user_agent or (ua.is_pc and browser is None):
        device_type = "desktop"
    else:
        device_type = "web"

    name = f"{browser or 'Unknown browser'} on {os_name or 'Unknown OS'}"
    return DeviceInfo(device_name=name, device_type=device_type, browser=browser, os=os_name)


def client_ip(headers: Mapping[str, str], fallback: str | None = None) -> str | None:
    """Best guess at the caller's address behind proxies."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = headers.get(header)
        if value:
            return value.strip()
    return fallback
