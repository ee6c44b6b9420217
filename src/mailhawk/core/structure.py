# =============================================================================
# MIME Structure Tree
# =============================================================================
# The server-reported description of a message's MIME parts (BODYSTRUCTURE).
# The listing uses it for one thing only: deciding whether a message has
# attachments without downloading the message.
# =============================================================================

from dataclasses import dataclass, field

# Disposition types that count as an attachment
ATTACHMENT_DISPOSITIONS = frozenset({"attachment", "inline"})


@dataclass
class Disposition:
    """Content-Disposition of a part: its type plus parameters."""
    type: str
    params: dict[str, str] = field(default_factory=dict)


@dataclass
class MimeNode:
    """
    One node of a structure tree.

    Attributes:
        content_type: Lowercased "type/subtype" (e.g., "multipart/mixed").
        params: Content-Type parameters with lowercased keys ("charset",
                "name", "boundary", ...).
        disposition: The part's disposition, if the server reported one.
        parts: Child nodes (only for multipart and message/rfc822 parts).
    """
    content_type: str = "text/plain"
    params: dict[str, str] = field(default_factory=dict)
    disposition: Disposition | None = None
    parts: list["MimeNode"] = field(default_factory=list)

    @property
    def is_multipart(self) -> bool:
        return self.content_type.startswith("multipart/")

    @property
    def counts_as_attachment(self) -> bool:
        """
        True when this node alone marks the message as having attachments:
        an attachment/inline disposition, or a named part.
        """
        if self.disposition and self.disposition.type.lower() in ATTACHMENT_DISPOSITIONS:
            return True
        return bool(self.params.get("name"))


def has_attachments(structure: MimeNode | list[MimeNode] | None) -> bool:
    """
    Walk a structure tree and report whether any node counts as an attachment.

    Args:
        structure: A root node, a list of nodes, or None.

    Returns:
        True if any node at any depth has an attachment/inline disposition
        or a "name" parameter.
    """
    if structure is None:
        return False

    # Explicit stack keeps deep trees from hitting the recursion limit
    stack: list[MimeNode] = list(structure) if isinstance(structure, list) else [structure]
    while stack:
        node = stack.pop()
        if node.counts_as_attachment:
            return True
        stack.extend(node.parts)
    return False
