# =============================================================================
# Folder Model
# =============================================================================
# Represents a mailbox folder (IMAP "mailbox") as the gateway reports it.
#
# IMAP allows arbitrary folder hierarchies, so users may have custom folders
# like "Work/Projects/Alpha" or "Receipts.2024". The server tells us which
# delimiter separates the levels; the full path is what SELECT expects.
# =============================================================================

from dataclasses import dataclass


@dataclass
class Folder:
    """
    A folder in the flattened folder list.

    Attributes:
        name: The leaf name (e.g., "Alpha" for "Work/Projects/Alpha").
        path: The full path, ancestors joined with the delimiter. This is
              also the folder's id, since SELECT addresses folders by path.
        delimiter: The server's hierarchy delimiter (usually "/" or ".").
        unread_count: Number of unread messages. Stays 0 unless a STATUS
                      query was made for this folder.

    Example:
        >>> folder = Folder(name="Alpha", path="Work/Projects/Alpha")
        >>> folder.id
        'Work/Projects/Alpha'
    """

    name: str
    path: str
    delimiter: str = "/"
    unread_count: int = 0

    @property
    def id(self) -> str:
        """The folder id is its full path."""
        return self.path

    def to_dict(self) -> dict:
        """JSON shape used by /api/folders."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "unread": self.unread_count,
            "delimiter": self.delimiter,
        }

