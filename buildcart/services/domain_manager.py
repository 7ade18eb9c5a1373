"""Custom domain and SSL management for stores."""

from abc import ABC, abstractmethod

from buildcart.core.exceptions import ConflictError, NotFoundError
from buildcart.core.repository import StoreRepository
from buildcart.models.deployment import DomainBinding, SSLStatus
from buildcart.utils.logging import get_logger
from buildcart.utils.validators import validate_domain


class CertificateProvisioner(ABC):
    """Hook to an external certificate authority."""

    @abstractmethod
    async def request_certificate(self, domain: str) -> None:
        """Ask the certificate authority to issue a certificate for domain."""


class LoggingCertificateProvisioner(CertificateProvisioner):
    """Records certificate requests in the log only."""

    def __init__(self):
        self.logger = get_logger("certificates")

    async def request_certificate(self, domain: str) -> None:
        self.logger.info("certificates.requested", domain=domain)


class DomainManager:
    """Binds custom domains to stores and records SSL intent."""

    def __init__(
        self,
        stores: StoreRepository,
        certificates: CertificateProvisioner | None = None,
    ):
        self.stores = stores
        self.certificates = certificates or LoggingCertificateProvisioner()
        self.logger = get_logger("domain_manager")

    async def setup_custom_domain(self, store_id: str, domain: str) -> DomainBinding:
        """Bind a domain to a store.

        Re-binding a store's own domain is a no-op that succeeds.

        Raises:
            ValidationError: If the domain is malformed
            NotFoundError: If the store does not exist
            ConflictError: If another store owns the domain
        """
        domain = validate_domain(domain)

        store = await self.stores.get_store(store_id)
        if store is None:
            raise NotFoundError("Store", store_id)

        owner = await self.stores.find_store_by_domain(domain)
        if owner and owner != store_id:
            raise ConflictError("Domain is already in use", {"domain": domain})

        # The repository re-checks ownership atomically
        await self.stores.bind_custom_domain(store_id, domain)

        self.logger.info("domain_manager.bound", store_id=store_id, domain=domain)
        return DomainBinding(domain=domain, store_id=store_id, url=f"https://{domain}")

    async def enable_ssl(self, domain: str) -> SSLStatus:
        """Record SSL intent for a domain and hand it to the certificate authority.

        Idempotent: once the certificate authority has accepted a request for
        the domain it is not asked again. A failed request is logged and does
        not fail the call; the next call retries it.
        """
        domain = validate_domain(domain)

        await self.stores.set_ssl_enabled(domain, True)
        if await self.stores.is_certificate_requested(domain):
            self.logger.debug("domain_manager.ssl_already_enabled", domain=domain)
            return SSLStatus(domain=domain, certificate_requested=True)

        try:
            await self.certificates.request_certificate(domain)
        except Exception as e:
            self.logger.warning(
                "domain_manager.certificate_request_failed",
                domain=domain,
                error=str(e),
            )
            return SSLStatus(domain=domain, certificate_requested=False)

        await self.stores.set_certificate_requested(domain)
        self.logger.info("domain_manager.ssl_requested", domain=domain)
        return SSLStatus(domain=domain, certificate_requested=True)
