from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller, as asserted by the identity provider's token.

    Only ``user_id`` and ``organization_id`` feed the engine, which reloads
    active roles from the store. The token's ``roles`` are only read by the
    coarse ``require_role`` guard.
    """

    user_id: str
    organization_id: str
    roles: tuple[str, ...] = ()
