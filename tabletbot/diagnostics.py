"""Diagnostics prompt for new support threads.

When someone opens a thread in the support forum, the bot waits briefly for
the opening message. Without an attachment it asks for an OpenTabletDriver
diagnostics export; when the export lists a device with known awkward
identifiers it asks for a device string dump as well.
"""

import logging
from datetime import timedelta

import discord
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tabletbot.embeds import error_embed

logger = logging.getLogger(__name__)

FIRST_MESSAGE_TIMEOUT = 10  # seconds
MAX_THREAD_AGE = timedelta(seconds=5)
MAX_ATTACHMENT_SIZE = 5_000_000  # anything larger is not a diagnostics export

# vendor id -> product ids that need a string dump
TRICKY_DEVICES: dict[int, frozenset[int]] = {
    21827: frozenset({129}),
    9580: frozenset({97, 100, 109, 110, 111}),
}

DIAGNOSTICS_HELP = (
    "Sending diagnostics is a mandatory step! Please follow the instructions below or this request will be "
    "deleted.\n\n"
    "- Start OpenTabletDriver (if it is not already running)\n"
    "- Go to `Help` -> `Export Diagnostics` in the top menu\n"
    "- Save the file, then upload here."
)


class HidDevice(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    vendor_id: int = Field(alias="VendorID")
    product_id: int = Field(alias="ProductID")


class DiagnosticsDump(BaseModel):
    """The part of an OpenTabletDriver diagnostics export the bot reads."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    hid_devices: list[HidDevice] = Field(alias="HID Devices")


def parse_diagnostics(data: bytes) -> DiagnosticsDump | None:
    try:
        return DiagnosticsDump.model_validate_json(data)
    except ValidationError:
        return None


def find_tricky_device(dump: DiagnosticsDump) -> HidDevice | None:
    """First device whose identifiers are known to need a string dump."""
    for device in dump.hid_devices:
        if device.product_id in TRICKY_DEVICES.get(device.vendor_id, ()):
            return device
    return None


def _may_be_diagnostics(attachment: discord.Attachment) -> bool:
    if attachment.size > MAX_ATTACHMENT_SIZE:
        return False
    content_type = attachment.content_type
    # a missing content type usually means the extension was stripped
    return content_type is None or "application/json" in content_type or "text/plain" in content_type


def diagnostics_required_embed() -> discord.Embed:
    return error_embed("Exporting diagnostics", DIAGNOSTICS_HELP)


def string_dump_embed(device: HidDevice) -> discord.Embed:
    return error_embed(
        "String dump required",
        "Your device is known to have tricky identifiers to work with, and such a device string dump will help "
        "support this tablet faster. Please follow these instructions below.\n\n"
        "- Start OpenTabletDriver (if it is not already running)\n"
        "- Go to `Tablets` -> `Device string reader` in the top menu\n"
        f"- Put `{device.vendor_id}` in the top box\n"
        f"- `{device.product_id}` in the middle box\n"
        "- Press `Dump all`\n"
        "- Save the file, then upload here.",
    )


async def review_first_message(message: discord.Message) -> discord.Embed | None:
    """The follow-up request for a thread's opening message, or None if it needs none."""
    if not message.attachments:
        return diagnostics_required_embed()

    for attachment in message.attachments:
        if not _may_be_diagnostics(attachment):
            continue
        try:
            data = await attachment.read()
        except discord.HTTPException as exc:
            logger.info("Failed to download attachment %s: %s", attachment.filename, exc)
            return None

        dump = parse_diagnostics(data)
        if dump is None:
            logger.debug("Attachment %s is not a diagnostics export", attachment.filename)
            continue
        if device := find_tricky_device(dump):
            return string_dump_embed(device)
    return None


def is_new_thread(thread: discord.Thread) -> bool:
    return discord.utils.utcnow() - discord.utils.snowflake_time(thread.id) <= MAX_THREAD_AGE


async def prompt_for_diagnostics(
    client: discord.Client,
    thread: discord.Thread,
    timeout: float = FIRST_MESSAGE_TIMEOUT,
) -> None:
    """Wait for the thread's first message and post whatever it is missing."""
    try:
        message = await client.wait_for("message", check=lambda m: m.channel.id == thread.id, timeout=timeout)
    except TimeoutError:
        logger.debug("No opening message in thread %d", thread.id)
        return

    embed = await review_first_message(message)
    if embed is None:
        return
    try:
        await thread.send(embed=embed)
    except discord.HTTPException as exc:
        logger.warning("Failed to post diagnostics request in thread %d: %s", thread.id, exc)
