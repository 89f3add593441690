"""Re-upload message attachments to another channel so archives keep working links."""

import discord
import requests

from zeppelin.util.download import download_file
from zeppelin.util.logger import get_logger

logger = get_logger("rehost_attachment")

MAX_ATTACHMENT_REHOST_SIZE = 1024 * 1024 * 8
DOWNLOAD_TRIES = 3


async def rehost_attachment(attachment: discord.Attachment, target_channel: discord.abc.Messageable) -> str:
    """
    Download ``attachment`` and upload it to ``target_channel``.

    Returns:
        str: URL of the rehosted file, or a short description of why it
        could not be rehosted.
    """
    if attachment.size > MAX_ATTACHMENT_REHOST_SIZE:
        return "Attachment too big to rehost"

    try:
        downloaded = await download_file(attachment.url, DOWNLOAD_TRIES)
    except requests.RequestException:
        return f"Failed to download attachment after {DOWNLOAD_TRIES} tries"

    try:
        rehost_message = await target_channel.send(
            f"Rehost of attachment {attachment.id}",
            file=discord.File(str(downloaded.path), filename=attachment.filename),
        )
        return rehost_message.attachments[0].url
    except (discord.HTTPException, OSError, IndexError) as exc:
        logger.warning("[ARCHIVER] Failed to rehost attachment %s: %s", attachment.id, exc)
        return "Failed to rehost attachment"
    finally:
        downloaded.delete_fn()
