from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from ..domain.route import Route


class RouteRepository(ABC):
    """
    Defines how the application accesses route definitions.

    Routes carry predicates and handlers, so they live in process memory
    rather than in the database.
    """

    @abstractmethod
    def get_route(self, route_ref: str) -> Optional[Route]:
        """Retrieves a route by id or title. Returns None if unknown."""
        pass

    @abstractmethod
    def list_routes(self) -> List[Route]:
        pass


class InMemoryRouteRepository(RouteRepository):
    """
    Registry of frozen routes, indexed by id.
    """

    def __init__(self, routes: Optional[Iterable[Route]] = None):
        self._index: Dict[str, Route] = {}
        for route in routes or []:
            self.add(route)

    def add(self, route: Route) -> Route:
        route.freeze()
        self._index[route.id] = route
        return route

    def get_route(self, route_ref: str) -> Optional[Route]:
        route = self._index.get(route_ref)
        if route:
            return route
        return next((r for r in self._index.values() if r.title == route_ref), None)

    def list_routes(self) -> List[Route]:
        return list(self._index.values())
