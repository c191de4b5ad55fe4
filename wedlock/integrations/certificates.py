"""
Certificate registry adapters — issue and revoke proof-of-marriage tokens.

The registry is an external collaborator. The record store allocates the
certificate IDs and asks the registry to mint one certificate per partner on
marriage, and to burn both on divorce.

Two adapters are provided: an in-memory registry for tests and single-process
deployments, and a thin httpx client for a remote registry service.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from wedlock.protocol.schema import Certificate, Principal

logger = logging.getLogger(__name__)


class CertificateRegistryError(Exception):
    """Raised when the registry rejects a mint or burn."""
    pass


class CertificateRegistry(Protocol):
    def mint(
        self,
        owner: Principal,
        certificate_id: int,
        partner1: Principal,
        partner2: Principal,
        wedding_date: int,
    ) -> None: ...

    def burn(self, certificate_id: int) -> None: ...

    def close(self) -> None: ...


class InMemoryCertificateRegistry:
    """Dictionary-backed registry."""

    def __init__(self) -> None:
        self.certificates: dict[int, Certificate] = {}
        self.burned: list[int] = []

    def close(self) -> None:
        pass

    def mint(
        self,
        owner: Principal,
        certificate_id: int,
        partner1: Principal,
        partner2: Principal,
        wedding_date: int,
    ) -> None:
        if certificate_id in self.certificates:
            raise CertificateRegistryError(
                f"Certificate {certificate_id} has already been minted"
            )
        self.certificates[certificate_id] = Certificate(
            id=certificate_id,
            owner=owner,
            partner1=partner1,
            partner2=partner2,
            wedding_date=wedding_date,
        )
        logger.info("Certificate minted: id=%d owner=%s", certificate_id, owner)

    def burn(self, certificate_id: int) -> None:
        if self.certificates.pop(certificate_id, None) is None:
            raise CertificateRegistryError(
                f"Cannot burn certificate {certificate_id}: it does not exist"
            )
        self.burned.append(certificate_id)
        logger.info("Certificate burned: id=%d", certificate_id)

    def get(self, certificate_id: int) -> Certificate | None:
        return self.certificates.get(certificate_id)

    def owner_of(self, certificate_id: int) -> Principal | None:
        certificate = self.certificates.get(certificate_id)
        return certificate.owner if certificate else None

    def certificates_of(self, owner: Principal) -> list[Certificate]:
        return [c for c in self.certificates.values() if c.owner == owner]


class HttpCertificateRegistry:
    """
    REST client for a remote certificate registry.

    POST   /certificates          — mint
    DELETE /certificates/{id}     — burn
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        if not self._client.is_closed:
            self._client.close()

    def mint(
        self,
        owner: Principal,
        certificate_id: int,
        partner1: Principal,
        partner2: Principal,
        wedding_date: int,
    ) -> None:
        payload = Certificate(
            id=certificate_id,
            owner=owner,
            partner1=partner1,
            partner2=partner2,
            wedding_date=wedding_date,
        ).model_dump()
        try:
            resp = self._client.post("/certificates", json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise CertificateRegistryError(
                f"Minting certificate {certificate_id} failed: {exc}"
            ) from exc
        logger.info("Certificate minted remotely: id=%d owner=%s", certificate_id, owner)

    def burn(self, certificate_id: int) -> None:
        try:
            resp = self._client.delete(f"/certificates/{certificate_id}")
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise CertificateRegistryError(
                f"Burning certificate {certificate_id} failed: {exc}"
            ) from exc
        logger.info("Certificate burned remotely: id=%d", certificate_id)
