"""Data models for Buildcart."""

from buildcart.models.deployment import (
    DateRange,
    DeployResult,
    Deployment,
    DeploymentAnalytics,
    DeploymentConfig,
    DeploymentEnvironment,
    DeploymentLogs,
    DeploymentPage,
    DeploymentStatistics,
    DeploymentStatus,
    DomainBinding,
    Pagination,
    SSLStatus,
)
from buildcart.models.identity import Identity, Role
from buildcart.models.store import (
    Product,
    Store,
    StoreOwner,
    StoreSnapshot,
    StoreSummary,
    Theme,
)

__all__ = [
    # Store models
    "Product",
    "Store",
    "StoreOwner",
    "StoreSnapshot",
    "StoreSummary",
    "Theme",
    # Deployment models
    "DateRange",
    "DeployResult",
    "Deployment",
    "DeploymentAnalytics",
    "DeploymentConfig",
    "DeploymentEnvironment",
    "DeploymentLogs",
    "DeploymentPage",
    "DeploymentStatistics",
    "DeploymentStatus",
    "DomainBinding",
    "Pagination",
    "SSLStatus",
    # Identity models
    "Identity",
    "Role",
]
