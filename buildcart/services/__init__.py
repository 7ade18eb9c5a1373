"""Side-effecting collaborators of the deployment pipeline."""

from buildcart.services.build_writer import BuildWriter
from buildcart.services.domain_manager import (
    CertificateProvisioner,
    DomainManager,
    LoggingCertificateProvisioner,
)
from buildcart.services.notifier import EmailNotifier, Notifier

__all__ = [
    "BuildWriter",
    "CertificateProvisioner",
    "DomainManager",
    "LoggingCertificateProvisioner",
    "EmailNotifier",
    "Notifier",
]
