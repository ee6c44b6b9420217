# =============================================================================
# Folder Lister
# =============================================================================
# Turns the flat LIST response into the flattened folder list clients render.
#
# Servers report full names ("Work/Projects/Alpha") plus a delimiter. We
# rebuild the hierarchy as a tree and walk it depth-first, so every folder
# comes out with its leaf name and its full path. Ancestors the server did
# not list on their own (e.g. "Work" when only "Work/Projects" exists) are
# still emitted so paths stay complete.
# =============================================================================

import base64
import binascii
import logging
from dataclasses import dataclass, field

from mailhawk.core import Folder, FolderError
from mailhawk.imap.client import IMAPConnection, IMAPError, MailboxEntry

logger = logging.getLogger(__name__)


def decode_mailbox_name(name: str) -> str:
    """
    Decode an IMAP modified UTF-7 mailbox name (RFC 3501 section 5.1.3).

    Example:
        >>> decode_mailbox_name("Entw&APw-rfe")
        'Entwürfe'
    """
    if "&" not in name:
        return name

    result = []
    i = 0
    while i < len(name):
        char = name[i]
        if char != "&":
            result.append(char)
            i += 1
            continue

        end = name.find("-", i)
        if end == -1:
            result.append(name[i:])
            break
        if end == i + 1:
            # "&-" is a literal ampersand
            result.append("&")
        else:
            chunk = name[i + 1:end].replace(",", "/")
            chunk += "=" * (-len(chunk) % 4)
            try:
                result.append(base64.b64decode(chunk).decode("utf-16-be"))
            except (binascii.Error, UnicodeDecodeError):
                result.append(name[i:end + 1])
        i = end + 1

    return "".join(result)


@dataclass
class _Node:
    name: str
    children: dict[str, "_Node"] = field(default_factory=dict)


def build_tree(entries: list[MailboxEntry]) -> tuple[dict[str, _Node], str]:
    """
    Arrange LIST entries into a tree keyed by path segment.

    Returns:
        (root children, delimiter). The delimiter is the first one the
        server reported, "/" if it never reported one.
    """
    delimiter = next((e.delimiter for e in entries if e.delimiter), "/")
    root: dict[str, _Node] = {}

    for entry in entries:
        segments = entry.name.split(entry.delimiter) if entry.delimiter else [entry.name]
        level = root
        for segment in segments:
            if segment not in level:
                level[segment] = _Node(segment)
            level = level[segment].children

    return root, delimiter


def flatten_tree(nodes: dict[str, _Node], delimiter: str, prefix: str = "") -> list[Folder]:
    """
    Flatten a folder tree depth-first.

    Each node becomes one Folder whose path is its ancestors' names joined
    with the delimiter; its children follow it directly.
    """
    folders = []
    # Explicit stack so arbitrarily deep hierarchies cannot overflow
    stack = [(prefix, node) for node in reversed(list(nodes.values()))]
    while stack:
        parent_path, node = stack.pop()
        path = f"{parent_path}{delimiter}{node.name}" if parent_path else node.name
        folders.append(Folder(
            name=decode_mailbox_name(node.name),
            path=path,
            delimiter=delimiter,
        ))
        stack.extend((path, child) for child in reversed(list(node.children.values())))
    return folders


async def list_folders(connection: IMAPConnection, *, with_counts: bool = False) -> list[Folder]:
    """
    List every folder of the mailbox as a flat, depth-first list.

    Args:
        connection: A READY connection.
        with_counts: Also fill `unread_count` from STATUS (UNSEEN). One
                     extra round trip per folder; failures leave 0.

    Returns:
        Folders in tree order.

    Raises:
        FolderError: If the LIST command fails.
    """
    async with connection.lock:
        try:
            entries = await connection.list_mailboxes()
        except IMAPError as e:
            raise FolderError(f"Failed to list folders: {e}") from e

        root, delimiter = build_tree(entries)
        folders = flatten_tree(root, delimiter)

        if with_counts:
            listed = {e.name for e in entries if e.selectable}
            for folder in folders:
                if folder.path not in listed:
                    continue
                try:
                    status = await connection.get_folder_status(folder.path, "(UNSEEN)")
                    folder.unread_count = status.get("UNSEEN", 0)
                except IMAPError as e:
                    logger.warning(f"Could not get status for {folder.path}: {e}")

    logger.debug(f"Listed {len(folders)} folders for {connection.credentials.email}")
    return folders
