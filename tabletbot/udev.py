"""udev rules generation for tablets OpenTabletDriver does not yet have access to."""

UDEV_FILENAME = "70-opentabletdriver.rules"

REQUIRED_UDEV_RULES = """
KERNEL=="uinput", SUBSYSTEM=="misc", OPTIONS+="static_node=uinput", TAG+="uaccess", TAG+="udev-acl"
KERNEL=="js[0-9]*", SUBSYSTEM=="input", ATTRS{name}=="OpenTabletDriver Virtual Tablet", RUN+="/usr/bin/env rm %E{DEVNAME}"
"""


def generate_udev(vendor_id: int, product_id: int, libinput_override: bool = True) -> str:
    """Return a rules file granting user access to the device's hidraw and usb nodes."""
    ids = f'ATTRS{{idVendor}}=="{vendor_id:04x}", ATTRS{{idProduct}}=="{product_id:04x}"'
    rules = [
        f'KERNEL=="hidraw*", {ids}, TAG+="uaccess", TAG+="udev-acl"',
        f'SUBSYSTEM=="usb", {ids}, TAG+="uaccess", TAG+="udev-acl"',
    ]
    if libinput_override:
        rules.append(f'SUBSYSTEM=="input", {ids}, ENV{{LIBINPUT_IGNORE_DEVICE}}="1"')

    return f"{REQUIRED_UDEV_RULES}\n# Generated by TabletBot\n" + "\n".join(rules)
