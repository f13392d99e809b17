# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Trust Store

The Verifier's authorization policy. Two variants:

- ``AclTrustStore``: per-group allow-lists of public identities.
- ``IssuerRegistry``: per-group trusted issuer keys; anyone holding a valid
  credential from that issuer is admitted without being identified.

Both are read-only after construction apart from issuer revocation.
"""

from __future__ import annotations

import hmac
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from zkjoin.exceptions import AuthorizationDeniedError
from zkjoin.identity import BindingKind, Identity
from zkjoin.messages import JoinRequest

logger = logging.getLogger(__name__)


class TrustBinding(BaseModel):
    """What a successful authorization ties the session to.

    Attributes:
        group_name: Group the requester asked to join.
        binding: Identity (ACL) or issuer key (registry) challenges bind to.
        time_bound: Whether credentials must be checked against the
            challenge time.
    """

    model_config = ConfigDict(frozen=True)

    group_name: str
    binding: Identity
    time_bound: bool = False


class TrustStore(ABC):
    """Policy lookup used before any challenge is issued."""

    @abstractmethod
    def authorize(self, request: JoinRequest) -> Optional[TrustBinding]:
        """Return a binding if the request is admissible, else ``None``.

        Denial is a normal outcome, not an error.
        """

    @abstractmethod
    def groups(self) -> list[str]:
        """Names of the groups this store knows about."""

    def require(self, request: JoinRequest) -> TrustBinding:
        """Like ``authorize`` but raises when the request is denied.

        Raises:
            AuthorizationDeniedError: If the request is not admissible.
        """
        binding = self.authorize(request)
        if binding is None:
            raise AuthorizationDeniedError(f"not authorized for group {request.group_name!r}")
        return binding


class AclTrustStore(TrustStore):
    """Allow-list policy.

    Args:
        groups: Mapping of group name to the identities allowed into it,
            given as raw 32-byte values or hex strings.
    """

    def __init__(self, groups: Mapping[str, Iterable[bytes | str]]) -> None:
        self._groups: dict[str, tuple[Identity, ...]] = {
            name: tuple(Identity.acl(member) for member in members)
            for name, members in groups.items()
        }

    def authorize(self, request: JoinRequest) -> Optional[TrustBinding]:
        identity = request.identity
        if identity is None or identity.kind != BindingKind.ACL_ID:
            logger.info("ACL request for %s carries no ACL identity", request.group_name)
            return None

        members = self._groups.get(request.group_name)
        if members is None:
            logger.info("ACL request for unknown group %s", request.group_name)
            return None

        # scan every member so timing does not depend on the match position
        found = False
        for member in members:
            if hmac.compare_digest(member.value, identity.value):
                found = True
        if not found:
            logger.info(
                "Identity %s not on ACL for %s", identity.short(), request.group_name
            )
            return None

        return TrustBinding(group_name=request.group_name, binding=identity)

    def groups(self) -> list[str]:
        return sorted(self._groups)

    def members(self, group_name: str) -> list[Identity]:
        return list(self._groups.get(group_name, ()))


class IssuerRegistry(TrustStore):
    """Trusted-issuer policy.

    Args:
        issuers: Mapping of group name to the issuer public key (raw 32 bytes
            or hex) whose credentials admit a holder into that group.
        revoked: Issuer keys that no longer authorize anything.
    """

    def __init__(
        self,
        issuers: Mapping[str, bytes | str],
        revoked: Iterable[bytes | str] = (),
    ) -> None:
        self._issuers: dict[str, Identity] = {
            name: Identity.issuer(key) for name, key in issuers.items()
        }
        self._revoked: set[bytes] = {Identity.issuer(key).value for key in revoked}

    def authorize(self, request: JoinRequest) -> Optional[TrustBinding]:
        issuer = self._issuers.get(request.group_name)
        if issuer is None:
            logger.info("Registry request for unknown group %s", request.group_name)
            return None
        if self.is_revoked(issuer.value):
            logger.warning(
                "Issuer %s for %s is revoked", issuer.short(), request.group_name
            )
            return None
        return TrustBinding(group_name=request.group_name, binding=issuer, time_bound=True)

    def groups(self) -> list[str]:
        return sorted(self._issuers)

    def issuer_for(self, group_name: str) -> Optional[Identity]:
        return self._issuers.get(group_name)

    def revoke_issuer(self, key: bytes | str) -> None:
        """Stop trusting ``key`` for every group it was configured for."""
        value = Identity.issuer(key).value
        self._revoked.add(value)
        logger.info("Revoked issuer %s...", value.hex()[:16])

    def is_revoked(self, key: bytes | str) -> bool:
        return Identity.issuer(key).value in self._revoked


__all__ = ["TrustBinding", "TrustStore", "AclTrustStore", "IssuerRegistry"]
