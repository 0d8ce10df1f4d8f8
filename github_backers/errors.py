"""Exception taxonomy shared by every layer of the backers pipeline."""

from __future__ import annotations

from typing import Optional, Sequence


class BackersError(Exception):
    """Base class for all github-backers failures."""


class InvalidAuth(BackersError):
    """Credentials are missing or incomplete."""


class UnresolvedTarget(BackersError):
    """Neither a repository slug nor a manifest could be determined."""


class InvalidFormat(BackersError):
    """Unknown render format."""


class InvalidArgument(BackersError):
    """Malformed command line or caller input."""


class RemoteFetchError(BackersError):
    """An HTTP, GraphQL or decoding failure against a remote source.

    ``messages`` keeps every problem found for the request in the order it
    was detected (status, decoding, then payload errors) so a single
    exception can explain all of them.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        messages: Optional[Sequence[str]] = None,
    ) -> None:
        self.url = url
        self.messages = list(messages or [])
        detail = "; ".join(m for m in self.messages if m and m != message)
        super().__init__(f"{message}: {detail}" if detail else message)
