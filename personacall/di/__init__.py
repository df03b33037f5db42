"""
Dependency Injection Module
===========================

Usage:
    from personacall.di import build_container

    container = build_container(settings)

    async with container.create_scope({AsyncSession: session}) as scope:
        manager = await scope.resolve(CallLifecycleManager)
"""

from .container import (
    CircularDependencyError,
    Container,
    ContainerError,
    Scope,
    ServiceDescriptor,
    ServiceLifetime,
    ServiceNotFoundError,
)
from .services import build_container, configure_services

__all__ = [
    "Container",
    "Scope",
    "ServiceLifetime",
    "ServiceDescriptor",
    "ContainerError",
    "ServiceNotFoundError",
    "CircularDependencyError",
    "configure_services",
    "build_container",
]
