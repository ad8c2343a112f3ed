"""Repository full-name utilities.

Full names identify repositories across the estate. GitHub repositories use
``org/name`` and Azure DevOps repositories use ``org/project/name``. They are
not filesystem paths, even though they use ``/`` as a separator, so they
should be parsed using these helpers rather than ``pathlib``.
"""

from __future__ import annotations

_SEPARATOR = "/"


def full_name(*parts: str) -> str:
    """Join owner, optional project, and repository name into a full name.

    Examples
    --------
    >>> full_name("acme", "widgets")
    'acme/widgets'
    >>> full_name("contoso", "payments", "api")
    'contoso/payments/api'

    """
    return _SEPARATOR.join(parts)


def organization_of(name: str) -> str:
    """Return the leading organization segment of a full name.

    Examples
    --------
    >>> organization_of("acme/widgets")
    'acme'
    >>> organization_of("standalone")
    'standalone'

    """
    return name.split(_SEPARATOR, 1)[0]


def basename(name: str) -> str:
    """Return the trailing repository segment of a full name.

    Examples
    --------
    >>> basename("contoso/payments/api")
    'api'

    """
    return name.rsplit(_SEPARATOR, 1)[-1]


def default_destination(destination_org: str, name: str) -> str:
    """Build the batch-default destination for a repository.

    Parameters
    ----------
    destination_org:
        Destination organization configured on the batch.
    name:
        Source full name of the repository.

    Returns
    -------
    str
        ``destination_org/basename``.

    Examples
    --------
    >>> default_destination("acme-cloud", "contoso/payments/api")
    'acme-cloud/api'

    """
    return f"{destination_org}{_SEPARATOR}{basename(name)}"
