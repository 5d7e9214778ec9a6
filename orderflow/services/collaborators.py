"""Process-wide collaborator clients shared by requests and the reconcile poller."""

from __future__ import annotations

import logging
import threading

from sqlalchemy.orm import Session

from orderflow.core.config import settings
from orderflow.services.customer_directory import CustomerDirectory, build_customer_directory
from orderflow.services.inventory_reconciler import InventoryReconciler
from orderflow.services.inventory_store import HttpInventoryStore, InventoryStore, SqlInventoryStore
from orderflow.services.menu_catalog import MenuCatalog, build_menu_catalog
from orderflow.services.recipes import RecipeResolver, build_recipe_resolver

logger = logging.getLogger(__name__)


class CollaboratorRegistry:
    """Builds each collaborator once from settings and closes them together.

    HTTP-backed collaborators own a connection pool; they live until
    ``close`` and are rebuilt on the next access after it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._directory: CustomerDirectory | None = None
        self._catalog: MenuCatalog | None = None
        self._resolver: RecipeResolver | None = None
        self._inventory: HttpInventoryStore | None = None
        self._built = False

    def _ensure_built(self) -> None:
        with self._lock:
            if self._built:
                return
            self._directory = build_customer_directory()
            self._catalog = build_menu_catalog()
            self._resolver = build_recipe_resolver()
            if settings.inventory_service_url:
                self._inventory = HttpInventoryStore(settings.inventory_service_url)
            self._built = True
            logger.info(
                "[BOOTSTRAP] Collaborators ready (customers=%s, menu=%s, inventory=%s)",
                settings.customer_service_url or "static",
                settings.menu_service_url or "static",
                settings.inventory_service_url or "local",
            )

    @property
    def directory(self) -> CustomerDirectory:
        self._ensure_built()
        return self._directory

    @property
    def catalog(self) -> MenuCatalog:
        self._ensure_built()
        return self._catalog

    @property
    def resolver(self) -> RecipeResolver:
        self._ensure_built()
        return self._resolver

    def inventory_store(self, db: Session) -> InventoryStore:
        """The shared remote store, or a local store bound to this session."""
        self._ensure_built()
        if self._inventory is not None:
            return self._inventory
        return SqlInventoryStore(db)

    def reconciler(self, db: Session) -> InventoryReconciler:
        return InventoryReconciler(self.resolver, self.inventory_store(db))

    def close(self) -> None:
        with self._lock:
            for resource in (self._directory, self._catalog, self._resolver, self._inventory):
                close = getattr(resource, "close", None)
                if close is not None:
                    close()
            self._directory = None
            self._catalog = None
            self._resolver = None
            self._inventory = None
            self._built = False


registry = CollaboratorRegistry()
