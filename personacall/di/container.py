"""
Dependency Injection Container
==============================

A lightweight dependency injection container for managing service
lifetimes and dependencies.

Features:
    - Singleton, scoped, and transient service lifetimes
    - Constructor and factory injection driven by type hints
    - Async context manager support for scoped services
    - Scopes seeded with externally owned instances (e.g. a request's
      database session)

Usage:
    container = Container()
    container.register_singleton(Settings, instance=settings)
    container.register_scoped(UserRepository)

    async with container.create_scope(seed={AsyncSession: session}) as scope:
        users = await scope.resolve(UserRepository)
"""

import asyncio
import inspect
import threading
import typing
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Type,
    TypeVar,
    Union,
)

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ServiceLifetime(str, Enum):
    """Service lifetime definitions."""

    SINGLETON = "singleton"  # Single instance for application lifetime
    SCOPED = "scoped"  # Single instance per scope (e.g., request)
    TRANSIENT = "transient"  # New instance every time


@dataclass
class ServiceDescriptor(Generic[T]):
    """Describes how to create and manage a service."""

    service_type: Type[T]
    lifetime: ServiceLifetime
    factory: Optional[Callable[..., Union[T, Awaitable[T]]]] = None
    implementation_type: Optional[Type[T]] = None

    def __post_init__(self):
        if self.factory is None and self.implementation_type is None:
            raise ValueError(
                f"Service {self.service_type.__name__} must have either "
                "a factory or implementation_type"
            )


class ContainerError(Exception):
    """Base exception for container errors."""


class ServiceNotFoundError(ContainerError):
    """Service not registered in container."""


class CircularDependencyError(ContainerError):
    """Circular dependency detected during resolution."""


async def _close_instance(instance: Any) -> None:
    for method_name in ("dispose", "close"):
        method = getattr(instance, method_name, None)
        if method is None:
            continue
        try:
            result = method()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error("service_dispose_failed", service=type(instance).__name__, error=str(e))
        return


class Scope:
    """A dependency injection scope.

    Scopes are created per request. Scoped services are instantiated once
    per scope; seeded instances are owned by the caller and are never
    disposed by the scope.
    """

    def __init__(self, container: "Container", seed: Optional[Dict[Type, Any]] = None):
        self._container = container
        self._seeded: Dict[Type, Any] = dict(seed or {})
        self._scoped_instances: Dict[Type, Any] = dict(self._seeded)
        self._resolution_stack: List[Type] = []

    def provide(self, service_type: Type[T], instance: T) -> None:
        """Seed an instance into this scope."""
        self._seeded[service_type] = instance
        self._scoped_instances[service_type] = instance

    async def resolve(self, service_type: Type[T]) -> T:
        """Resolve a service within this scope.

        Raises:
            ServiceNotFoundError: If service is not registered
            CircularDependencyError: If circular dependency detected
        """
        return await self._container._resolve_internal(
            service_type,
            self._scoped_instances,
            self._resolution_stack,
        )

    async def dispose(self) -> None:
        """Dispose scoped instances this scope created."""
        for service_type, instance in self._scoped_instances.items():
            if service_type in self._seeded:
                continue
            await _close_instance(instance)
        self._scoped_instances.clear()
        self._seeded.clear()


class Container:
    """Dependency injection container.

    Example:
        container = Container()
        container.register_singleton(
            DatabaseManager,
            factory=lambda: DatabaseManager(config.database_url),
        )
        container.register_scoped(CreditGuard)

        async with container.create_scope() as scope:
            guard = await scope.resolve(CreditGuard)
    """

    def __init__(self):
        self._descriptors: Dict[Type, ServiceDescriptor] = {}
        self._singleton_instances: Dict[Type, Any] = {}
        self._lock = threading.Lock()

    def is_registered(self, service_type: Type) -> bool:
        return service_type in self._descriptors

    def register_singleton(
        self,
        service_type: Type[T],
        factory: Optional[Callable[..., Union[T, Awaitable[T]]]] = None,
        implementation_type: Optional[Type[T]] = None,
        instance: Optional[T] = None,
    ) -> "Container":
        """Register a singleton service.

        Args:
            service_type: The service interface/type
            factory: Optional factory function to create instance
            implementation_type: Optional concrete implementation type
            instance: Optional pre-created instance

        Returns:
            Self for method chaining
        """
        with self._lock:
            if instance is not None:
                self._descriptors[service_type] = ServiceDescriptor(
                    service_type=service_type,
                    lifetime=ServiceLifetime.SINGLETON,
                    factory=lambda: instance,
                )
                self._singleton_instances[service_type] = instance
            else:
                self._singleton_instances.pop(service_type, None)
                self._descriptors[service_type] = ServiceDescriptor(
                    service_type=service_type,
                    lifetime=ServiceLifetime.SINGLETON,
                    factory=factory,
                    implementation_type=implementation_type or service_type,
                )
        return self

    def register_scoped(
        self,
        service_type: Type[T],
        factory: Optional[Callable[..., Union[T, Awaitable[T]]]] = None,
        implementation_type: Optional[Type[T]] = None,
    ) -> "Container":
        """Register a scoped service (one instance per scope)."""
        with self._lock:
            self._descriptors[service_type] = ServiceDescriptor(
                service_type=service_type,
                lifetime=ServiceLifetime.SCOPED,
                factory=factory,
                implementation_type=implementation_type or service_type,
            )
        return self

    def register_transient(
        self,
        service_type: Type[T],
        factory: Optional[Callable[..., Union[T, Awaitable[T]]]] = None,
        implementation_type: Optional[Type[T]] = None,
    ) -> "Container":
        """Register a transient service (new instance every resolution)."""
        with self._lock:
            self._descriptors[service_type] = ServiceDescriptor(
                service_type=service_type,
                lifetime=ServiceLifetime.TRANSIENT,
                factory=factory,
                implementation_type=implementation_type or service_type,
            )
        return self

    @asynccontextmanager
    async def create_scope(self, seed: Optional[Dict[Type, Any]] = None) -> AsyncIterator[Scope]:
        """Create a new dependency injection scope.

        Usage:
            async with container.create_scope({AsyncSession: session}) as scope:
                service = await scope.resolve(MyService)
        """
        scope = Scope(self, seed)
        try:
            yield scope
        finally:
            await scope.dispose()

    async def resolve(self, service_type: Type[T]) -> T:
        """Resolve a service outside any scope.

        Scoped services resolved this way are not cached.
        """
        return await self._resolve_internal(service_type, {}, [])

    async def _resolve_internal(
        self,
        service_type: Type[T],
        scoped_instances: Dict[Type, Any],
        resolution_stack: List[Type],
    ) -> T:
        if service_type in resolution_stack:
            cycle = " -> ".join(t.__name__ for t in resolution_stack)
            raise CircularDependencyError(
                f"Circular dependency detected: {cycle} -> {service_type.__name__}"
            )

        descriptor = self._descriptors.get(service_type)
        if descriptor is None:
            if service_type in scoped_instances:
                return scoped_instances[service_type]
            raise ServiceNotFoundError(
                f"Service {getattr(service_type, '__name__', service_type)} is not registered"
            )

        if descriptor.lifetime == ServiceLifetime.SINGLETON:
            if service_type in self._singleton_instances:
                return self._singleton_instances[service_type]
        elif descriptor.lifetime == ServiceLifetime.SCOPED:
            if service_type in scoped_instances:
                return scoped_instances[service_type]

        resolution_stack.append(service_type)
        try:
            instance = await self._create_instance(
                descriptor, scoped_instances, resolution_stack
            )
        finally:
            resolution_stack.pop()

        if descriptor.lifetime == ServiceLifetime.SINGLETON:
            with self._lock:
                self._singleton_instances[service_type] = instance
        elif descriptor.lifetime == ServiceLifetime.SCOPED:
            scoped_instances[service_type] = instance

        return instance

    async def _inject(
        self,
        target: Callable,
        scoped_instances: Dict[Type, Any],
        resolution_stack: List[Type],
    ) -> Dict[str, Any]:
        """Resolve keyword arguments for ``target`` from its type hints."""
        hints = typing.get_type_hints(target)
        kwargs: Dict[str, Any] = {}
        for param_name, param in inspect.signature(target).parameters.items():
            if param_name == "self" or param_name not in hints:
                continue
            dep_type = hints[param_name]
            if dep_type in self._descriptors or dep_type in scoped_instances:
                kwargs[param_name] = await self._resolve_internal(
                    dep_type, scoped_instances, resolution_stack
                )
            elif param.default is inspect.Parameter.empty:
                raise ServiceNotFoundError(
                    f"Cannot resolve parameter '{param_name}' of {getattr(target, '__qualname__', target)}"
                )
        return kwargs

    async def _create_instance(
        self,
        descriptor: ServiceDescriptor[T],
        scoped_instances: Dict[Type, Any],
        resolution_stack: List[Type],
    ) -> T:
        if descriptor.factory:
            kwargs = await self._inject(descriptor.factory, scoped_instances, resolution_stack)
            result = descriptor.factory(**kwargs)
            if asyncio.iscoroutine(result):
                return await result
            return result

        if descriptor.implementation_type:
            impl_type = descriptor.implementation_type
            kwargs = await self._inject(impl_type.__init__, scoped_instances, resolution_stack)
            return impl_type(**kwargs)

        raise ContainerError(
            f"Cannot create instance of {descriptor.service_type.__name__}"
        )

    async def dispose(self) -> None:
        """Dispose all singleton instances."""
        for instance in list(self._singleton_instances.values()):
            await _close_instance(instance)
        self._singleton_instances.clear()


__all__ = [
    "Container",
    "Scope",
    "ServiceLifetime",
    "ServiceDescriptor",
    "ContainerError",
    "ServiceNotFoundError",
    "CircularDependencyError",
]
