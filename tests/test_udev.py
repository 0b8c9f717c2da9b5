"""Tests for udev rules generation."""

from tabletbot.udev import REQUIRED_UDEV_RULES, generate_udev


def test_ids_are_lowercase_hex() -> None:
    rules = generate_udev(1386, 890)
    assert 'ATTRS{idVendor}=="056a", ATTRS{idProduct}=="037a"' in rules


def test_structure() -> None:
    rules = generate_udev(1386, 890)
    assert rules.startswith(REQUIRED_UDEV_RULES)
    lines = rules.split("\n")
    assert "# Generated by TabletBot" in lines
    assert lines[-3].startswith('KERNEL=="hidraw*"')
    assert lines[-2].startswith('SUBSYSTEM=="usb"')
    assert lines[-1].endswith('ENV{LIBINPUT_IGNORE_DEVICE}="1"')


def test_without_libinput_override() -> None:
    rules = generate_udev(1386, 890, libinput_override=False)
    assert "LIBINPUT_IGNORE_DEVICE" not in rules
    assert rules.split("\n")[-1].startswith('SUBSYSTEM=="usb"')
